from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from coderoom.constants import (
    BACKEND_KINDS,
    DEFAULT_AI_MODELS,
    DEFAULT_AI_PROVIDER,
    DEFAULT_BACKEND,
    DEFAULT_DATA_DIR,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive timestamps from storage are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Message(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    room_id: str
    author: str = Field(validation_alias=AliasChoices("author", "username"))
    content: str
    reply_to_id: str | None = None
    is_ai_generated: bool = Field(
        default=False, validation_alias=AliasChoices("is_ai_generated", "is_ai")
    )
    created_at: datetime
    # Computed when the message enters a store, never persisted.
    resolved_reply_to: Message | None = Field(default=None, exclude=True)

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    def with_reply(self, target: Message | None) -> Message:
        return self.model_copy(update={"resolved_reply_to": target})

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls.model_validate(data)


class RoomMember(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    room_id: str
    username: str
    joined_at: datetime = Field(default_factory=utc_now)

    @field_validator("joined_at")
    @classmethod
    def joined_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoomMember:
        return cls.model_validate(data)


class Room(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    code: str
    admin_username: str
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Room:
        return cls.model_validate(data)


class FeedEvent(BaseModel):
    entity: Literal["message", "member", "room"]
    operation: Literal["insert", "delete"]
    payload: dict[str, Any] = Field(default_factory=dict)


class InferenceRequest(BaseModel):
    prompt: str
    room_context: str | None = None


class InferenceReply(BaseModel):
    reply: str

    @field_validator("reply")
    @classmethod
    def reply_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("reply is empty")
        return value


class RoomSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    room_id: str | None = None
    room_code: str | None = None
    username: str | None = None
    is_admin: bool = False
    messages: tuple[Message, ...] = ()
    members: tuple[RoomMember, ...] = ()
    loading: bool = False
    ai_thinking: bool = False

    @property
    def in_room(self) -> bool:
        return self.room_id is not None


class AIProviderConfig(BaseModel):
    provider: str
    api_key: str
    model: str


class AIConfig(BaseModel):
    default_provider: str = DEFAULT_AI_PROVIDER
    providers: dict[str, dict[str, str]] = Field(
        default_factory=lambda: {
            name: {"api_key": "", "model": model}
            for name, model in DEFAULT_AI_MODELS.items()
        }
    )


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    backend: str = DEFAULT_BACKEND
    data_dir: str = DEFAULT_DATA_DIR

    @field_validator("backend")
    @classmethod
    def known_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in BACKEND_KINDS:
            raise ValueError(f"unknown backend '{value}'")
        return value
