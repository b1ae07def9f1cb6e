import asyncio

import pytest
from conftest import FakeInference, build_client

from coderoom.constants import (
    AI_ASSISTANT_NAME,
    AI_FALLBACK_REPLY,
    NOTICE_AI_PERSIST_FAILED,
)
from coderoom.errors import InferenceError, PersistenceError
from coderoom.events import AiThinkingEvent, NoticeEvent
from coderoom.repositories.memory_backend import InMemoryRoomBackend


class AiInsertFailsBackend(InMemoryRoomBackend):
    async def insert_message(self, **kwargs):
        if kwargs.get("is_ai_generated"):
            raise PersistenceError("write rejected")
        return await super().insert_message(**kwargs)


@pytest.mark.asyncio
async def test_successful_reply_is_persisted_as_assistant() -> None:
    client = build_client(inference=FakeInference(reply={"reply": "  It is 4.  "}))
    await client.session.create("alice")

    human = await client.session.send("@ai what is 2+2")

    reply = client.store.messages[-1]
    assert reply.author == AI_ASSISTANT_NAME
    assert reply.content == "It is 4."
    assert reply.is_ai_generated is True
    assert reply.reply_to_id == human.id
    stored = await client.backend.list_messages(client.state.room_id)
    assert [row["is_ai"] for row in stored] == [False, True]


@pytest.mark.asyncio
async def test_inference_failure_produces_exactly_one_fallback() -> None:
    inference = FakeInference(error=InferenceError("provider down"))
    client = build_client(inference=inference)
    await client.session.create("alice")

    human = await client.session.send("@ai what is 2+2")

    assert len(inference.calls) == 1
    ai_messages = [message for message in client.store.messages if message.is_ai_generated]
    assert len(ai_messages) == 1
    assert ai_messages[0].content == AI_FALLBACK_REPLY
    assert ai_messages[0].reply_to_id == human.id
    assert client.events_of(NoticeEvent) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [{"reply": "   "}, {"answer": "4"}, {}])
async def test_malformed_reply_falls_back(reply: dict) -> None:
    client = build_client(inference=FakeInference(reply=reply))
    await client.session.create("alice")

    await client.session.send("@ai hi")

    assert client.store.messages[-1].content == AI_FALLBACK_REPLY


@pytest.mark.asyncio
async def test_unexpected_inference_exception_falls_back() -> None:
    client = build_client(inference=FakeInference(error=TimeoutError("slow")))
    await client.session.create("alice")

    await client.session.send("@ai hi")

    assert client.store.messages[-1].content == AI_FALLBACK_REPLY


@pytest.mark.asyncio
async def test_reply_persist_failure_reports_and_keeps_human_message() -> None:
    client = build_client(AiInsertFailsBackend())
    await client.session.create("alice")

    human = await client.session.send("@ai hi")

    assert client.store.ids == [human.id]
    assert [notice.text for notice in client.events_of(NoticeEvent)] == [
        NOTICE_AI_PERSIST_FAILED
    ]
    assert client.state.ai_thinking is False


@pytest.mark.asyncio
async def test_thinking_flag_raised_while_call_in_flight() -> None:
    gate = asyncio.Event()
    client = build_client(inference=FakeInference(gate=gate))
    await client.session.create("alice")

    task = asyncio.create_task(client.session.send("@ai hi"))
    for _ in range(10):
        await asyncio.sleep(0)
        if client.inference.calls:
            break
    assert client.session.snapshot().ai_thinking is True

    gate.set()
    await task

    assert client.session.snapshot().ai_thinking is False
    assert [event.thinking for event in client.events_of(AiThinkingEvent)] == [
        True,
        False,
    ]


@pytest.mark.asyncio
async def test_reply_for_closed_room_is_discarded() -> None:
    gate = asyncio.Event()
    client = build_client(inference=FakeInference(gate=gate))
    await client.session.create("alice")
    room_id = client.state.room_id

    task = asyncio.create_task(client.session.send("@ai hi"))
    for _ in range(10):
        await asyncio.sleep(0)
        if client.inference.calls:
            break
    client.session.close()
    gate.set()
    await task

    assert len(client.store) == 0
    stored = await client.backend.list_messages(room_id)
    assert [row["is_ai"] for row in stored] == [False]
    assert client.state.ai_thinking is False


@pytest.mark.asyncio
async def test_respond_without_active_room_does_nothing() -> None:
    client = build_client()

    assert await client.ai.respond("hi", None, "m1") is None
    assert client.inference.calls == []
