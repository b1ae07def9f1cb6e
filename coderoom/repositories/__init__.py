from coderoom.repositories.config_repository import ConfigRepository
from coderoom.repositories.file_backend import FileRoomBackend
from coderoom.repositories.interfaces import (
    ChangeFeedProtocol,
    FeedCallback,
    FeedHandle,
    InferenceClientProtocol,
    RoomRepositoryProtocol,
)
from coderoom.repositories.memory_backend import InMemoryRoomBackend

__all__ = [
    "ChangeFeedProtocol",
    "ConfigRepository",
    "FeedCallback",
    "FeedHandle",
    "FileRoomBackend",
    "InMemoryRoomBackend",
    "InferenceClientProtocol",
    "RoomRepositoryProtocol",
]
