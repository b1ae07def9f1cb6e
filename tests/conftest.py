import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from coderoom.event_bus import EventBus
from coderoom.events import AppEvent
from coderoom.models import Message
from coderoom.repositories.memory_backend import InMemoryRoomBackend
from coderoom.services import (
    AiResponseOrchestrator,
    ChangeFeedSubscriber,
    MembershipRoster,
    MessageStore,
    OptimisticWriteCoordinator,
    RoomSession,
)
from coderoom.state import RoomState


def make_message(
    message_id: str,
    minute: int = 0,
    *,
    reply_to_id: str | None = None,
    room_id: str = "room-1",
    author: str = "alice",
    content: str = "hi",
) -> Message:
    return Message(
        id=message_id,
        room_id=room_id,
        author=author,
        content=content,
        reply_to_id=reply_to_id,
        created_at=datetime(2026, 1, 1, 12, minute, tzinfo=timezone.utc),
    )


class FakeInference:
    def __init__(
        self,
        reply: Any = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.reply = {"reply": "4"} if reply is None else reply
        self.error = error
        self.gate = gate
        self.calls: list[dict[str, Any]] = []

    async def invoke(self, request: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


@dataclass
class Client:
    backend: Any
    bus: EventBus
    state: RoomState
    store: MessageStore
    roster: MembershipRoster
    subscriber: ChangeFeedSubscriber
    ai: AiResponseOrchestrator
    writer: OptimisticWriteCoordinator
    session: RoomSession
    inference: FakeInference
    events: list[AppEvent] = field(default_factory=list)

    def events_of(self, event_type: type[AppEvent]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


def build_client(
    backend: Any = None, inference: FakeInference | None = None
) -> Client:
    backend = backend if backend is not None else InMemoryRoomBackend()
    inference = inference if inference is not None else FakeInference()
    bus = EventBus()
    state = RoomState()
    store = MessageStore(bus)
    roster = MembershipRoster(bus)
    subscriber = ChangeFeedSubscriber(backend, state, store, roster)
    ai = AiResponseOrchestrator(backend, inference, state, store, bus)
    writer = OptimisticWriteCoordinator(backend, state, store, ai, bus)
    session = RoomSession(backend, state, store, roster, subscriber, writer, bus)
    client = Client(
        backend=backend,
        bus=bus,
        state=state,
        store=store,
        roster=roster,
        subscriber=subscriber,
        ai=ai,
        writer=writer,
        session=session,
        inference=inference,
    )
    bus.subscribe(AppEvent, client.events.append)
    return client
