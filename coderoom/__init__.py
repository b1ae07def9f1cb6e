from coderoom.errors import (
    CodeRoomError,
    InferenceError,
    PersistenceError,
    RoomNotFoundError,
    RoomValidationError,
    UsernameTakenError,
)
from coderoom.event_bus import EventBus
from coderoom.models import FeedEvent, Message, Room, RoomMember, RoomSnapshot
from coderoom.services import RoomSession

__all__ = [
    "CodeRoomError",
    "EventBus",
    "FeedEvent",
    "InferenceError",
    "Message",
    "PersistenceError",
    "Room",
    "RoomMember",
    "RoomNotFoundError",
    "RoomSession",
    "RoomSnapshot",
    "RoomValidationError",
    "UsernameTakenError",
]
