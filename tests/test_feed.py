import pytest
from conftest import build_client

from coderoom.events import MembersChangedEvent, RoomClosedEvent
from coderoom.services.feed_service import parse_feed_event


def _message_row(room_id: str, message_id: str = "push-1") -> dict:
    return {
        "id": message_id,
        "room_id": room_id,
        "username": "bob",
        "content": "pushed",
        "reply_to_id": None,
        "is_ai": False,
        "created_at": "2026-01-01T12:00:00+00:00",
    }


def test_parse_feed_event_drops_malformed_rows() -> None:
    assert parse_feed_event("not a dict") is None
    assert parse_feed_event({"entity": "channel", "operation": "insert"}) is None
    assert parse_feed_event({"entity": "message", "operation": "update"}) is None
    event = parse_feed_event({"entity": "room", "operation": "delete", "payload": {"id": "r"}})
    assert event is not None
    assert event.payload == {"id": "r"}


@pytest.mark.asyncio
async def test_message_insert_is_appended_once() -> None:
    client = build_client()
    await client.session.create("alice")
    room_id = client.state.room_id

    client.subscriber.handle_event(
        {"entity": "message", "operation": "insert", "payload": _message_row(room_id)},
        room_id,
    )
    client.subscriber.handle_event(
        {"entity": "message", "operation": "insert", "payload": _message_row(room_id)},
        room_id,
    )

    assert client.store.ids == ["push-1"]
    assert client.store.get("push-1").author == "bob"


@pytest.mark.asyncio
async def test_malformed_message_payload_is_dropped() -> None:
    client = build_client()
    await client.session.create("alice")
    room_id = client.state.room_id

    client.subscriber.handle_event(
        {"entity": "message", "operation": "insert", "payload": {"id": "x"}},
        room_id,
    )

    assert len(client.store) == 0


@pytest.mark.asyncio
async def test_member_insert_and_delete_update_roster() -> None:
    client = build_client()
    await client.session.create("alice")
    room_id = client.state.room_id
    member = {
        "id": "member-bob",
        "room_id": room_id,
        "username": "bob",
        "joined_at": "2026-01-01T12:00:00+00:00",
    }

    client.subscriber.handle_event(
        {"entity": "member", "operation": "insert", "payload": member}, room_id
    )
    client.subscriber.handle_event(
        {"entity": "member", "operation": "insert", "payload": member}, room_id
    )
    assert sorted(client.roster.usernames) == ["alice", "bob"]

    client.subscriber.handle_event(
        {"entity": "member", "operation": "delete", "payload": {"id": "member-bob"}},
        room_id,
    )
    assert client.roster.usernames == ["alice"]
    assert client.events_of(MembersChangedEvent)[-1].count == 1


@pytest.mark.asyncio
async def test_events_for_another_room_are_ignored() -> None:
    client = build_client()
    await client.session.create("alice")
    room_id = client.state.room_id

    client.subscriber.handle_event(
        {"entity": "message", "operation": "insert", "payload": _message_row("other")},
        "other",
    )
    client.subscriber.handle_event(
        {"entity": "room", "operation": "delete", "payload": {"id": "other"}},
        room_id,
    )

    assert len(client.store) == 0
    assert client.state.room_id == room_id
    assert client.events_of(RoomClosedEvent) == []


@pytest.mark.asyncio
async def test_start_replaces_previous_subscription() -> None:
    client = build_client()
    await client.session.create("alice")
    first_room = client.state.room_id
    await client.session.create("alice")

    assert client.backend.subscription_count == 1
    assert client.subscriber.room_id == client.state.room_id != first_room
