from __future__ import annotations

import logging
from typing import Any

from coderoom.event_bus import EventBus
from coderoom.events import (
    AiThinkingEvent,
    LoadingEvent,
    MembersChangedEvent,
    MessagesChangedEvent,
    NoticeEvent,
    RoomClosedEvent,
    SessionChangedEvent,
)
from coderoom.state import RoomState

logger = logging.getLogger(__name__)


def _publish(bus: EventBus | None, event: Any, *, critical: bool = False) -> None:
    if bus is None:
        return
    try:
        bus.publish(event, critical=critical)
    except Exception:
        logger.exception(
            "Failed publishing event topic=%s", getattr(event, "topic", "unknown")
        )


def emit_notice(
    bus: EventBus | None, text: str, *, level: str = "info", source: str = "service"
) -> None:
    _publish(
        bus,
        NoticeEvent(source=source, level=level, text=text, critical=True),
        critical=True,
    )


def emit_error(bus: EventBus | None, text: str, source: str = "service") -> None:
    emit_notice(bus, text, level="error", source=source)


def emit_messages_changed(
    bus: EventBus | None, room_id: str | None, count: int, source: str = "store"
) -> None:
    _publish(bus, MessagesChangedEvent(source=source, room_id=room_id, count=count))


def emit_members_changed(
    bus: EventBus | None, room_id: str | None, count: int, source: str = "roster"
) -> None:
    _publish(bus, MembersChangedEvent(source=source, room_id=room_id, count=count))


def emit_session_changed(
    bus: EventBus | None, state: RoomState, source: str = "session"
) -> None:
    _publish(
        bus,
        SessionChangedEvent(
            source=source,
            room_id=state.room_id,
            room_code=state.room_code,
            username=state.username,
            is_admin=state.is_admin,
        ),
    )


def emit_room_closed(bus: EventBus | None, room_id: str, source: str = "feed") -> None:
    _publish(bus, RoomClosedEvent(source=source, room_id=room_id), critical=True)


def emit_ai_thinking(
    bus: EventBus | None, room_id: str | None, thinking: bool, source: str = "ai"
) -> None:
    _publish(bus, AiThinkingEvent(source=source, room_id=room_id, thinking=thinking))


def emit_loading(bus: EventBus | None, loading: bool, source: str = "session") -> None:
    _publish(bus, LoadingEvent(source=source, loading=loading))
