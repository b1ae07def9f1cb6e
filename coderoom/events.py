from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field


class AppEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    ts: str = Field(
        default_factory=lambda: datetime.now().isoformat(timespec="seconds")
    )
    topic: str
    source: str
    critical: bool = False
    retry_count: int = 0


class NoticeEvent(AppEvent):
    topic: Literal["notice"] = "notice"
    level: Literal["info", "error"] = "info"
    text: str


class MessagesChangedEvent(AppEvent):
    topic: Literal["messages_changed"] = "messages_changed"
    room_id: str | None = None
    count: int = 0


class MembersChangedEvent(AppEvent):
    topic: Literal["members_changed"] = "members_changed"
    room_id: str | None = None
    count: int = 0


class SessionChangedEvent(AppEvent):
    topic: Literal["session_changed"] = "session_changed"
    room_id: str | None = None
    room_code: str | None = None
    username: str | None = None
    is_admin: bool = False


class RoomClosedEvent(AppEvent):
    topic: Literal["room_closed"] = "room_closed"
    room_id: str


class AiThinkingEvent(AppEvent):
    topic: Literal["ai_thinking"] = "ai_thinking"
    room_id: str | None = None
    thinking: bool


class LoadingEvent(AppEvent):
    topic: Literal["loading"] = "loading"
    loading: bool
