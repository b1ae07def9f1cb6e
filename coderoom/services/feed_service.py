from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from coderoom.models import FeedEvent, Message, RoomMember
from coderoom.repositories.interfaces import ChangeFeedProtocol, FeedHandle
from coderoom.services.message_store import MessageStore
from coderoom.services.roster import MembershipRoster
from coderoom.state import RoomState

logger = logging.getLogger(__name__)


def parse_feed_event(raw: Any) -> FeedEvent | None:
    if isinstance(raw, FeedEvent):
        return raw
    if not isinstance(raw, dict):
        logger.warning("Dropping non-object feed event: %r", raw)
        return None
    try:
        return FeedEvent.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Dropping malformed feed event: %s", exc)
        return None


class ChangeFeedSubscriber:
    """Folds push events for the active room into the store and roster.

    Holds at most one feed subscription. Every delivery carries the room id
    it was subscribed for and is applied only while that room is current.
    """

    def __init__(
        self,
        feed: ChangeFeedProtocol,
        state: RoomState,
        store: MessageStore,
        roster: MembershipRoster,
        on_room_deleted: Callable[[str], None] | None = None,
    ):
        self.feed = feed
        self.state = state
        self.store = store
        self.roster = roster
        self.on_room_deleted = on_room_deleted
        self._handle: FeedHandle | None = None

    @property
    def room_id(self) -> str | None:
        if self._handle is None:
            return None
        return self._handle.room_id

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self, room_id: str) -> None:
        self.stop()
        self._handle = self.feed.subscribe(
            room_id, lambda raw: self.handle_event(raw, room_id)
        )
        logger.debug("Subscribed to change feed for room %s", room_id)

    def stop(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        self.feed.unsubscribe(handle)
        logger.debug("Unsubscribed from change feed for room %s", handle.room_id)

    def handle_event(self, raw: Any, room_id: str) -> None:
        if not self.state.is_current(room_id) or self.room_id != room_id:
            logger.debug("Discarding feed event for inactive room %s", room_id)
            return
        event = parse_feed_event(raw)
        if event is None:
            return

        if event.entity == "message":
            if event.operation == "insert":
                self._apply_message_insert(event.payload, room_id)
            return
        if event.entity == "member":
            if event.operation == "insert":
                self._apply_member_insert(event.payload, room_id)
            else:
                member_id = event.payload.get("id")
                if member_id:
                    self.roster.remove(str(member_id))
            return
        if event.entity == "room" and event.operation == "delete":
            if str(event.payload.get("id", "")) != room_id:
                return
            if self.on_room_deleted is not None:
                self.on_room_deleted(room_id)

    def _apply_message_insert(self, payload: dict[str, Any], room_id: str) -> None:
        try:
            message = Message.from_dict(payload)
        except ValidationError as exc:
            logger.warning("Dropping malformed message row: %s", exc)
            return
        if message.room_id != room_id:
            logger.debug("Ignoring message %s for room %s", message.id, message.room_id)
            return
        self.store.append(message)

    def _apply_member_insert(self, payload: dict[str, Any], room_id: str) -> None:
        try:
            member = RoomMember.from_dict(payload)
        except ValidationError as exc:
            logger.warning("Dropping malformed member row: %s", exc)
            return
        if member.room_id != room_id:
            return
        self.roster.add(member)
