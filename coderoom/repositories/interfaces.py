from collections.abc import Callable
from typing import Any, Protocol

FeedCallback = Callable[[dict[str, Any]], None]


class RoomRepositoryProtocol(Protocol):
    """Persistence collaborator. Rows come back as plain dicts."""

    async def create_room(self, code: str, admin_username: str) -> dict[str, Any]:
        pass

    async def find_room_by_code(self, code: str) -> dict[str, Any] | None:
        pass

    async def find_member(self, room_id: str, username: str) -> dict[str, Any] | None:
        pass

    async def add_member(self, room_id: str, username: str) -> dict[str, Any]:
        pass

    async def remove_member(self, room_id: str, username: str) -> None:
        pass

    async def insert_message(
        self,
        *,
        room_id: str,
        author: str,
        content: str,
        reply_to_id: str | None,
        is_ai_generated: bool,
    ) -> dict[str, Any]:
        pass

    async def list_messages(self, room_id: str) -> list[dict[str, Any]]:
        pass

    async def list_members(self, room_id: str) -> list[dict[str, Any]]:
        pass

    async def delete_room(self, room_id: str) -> None:
        pass


class FeedHandle(Protocol):
    room_id: str
    active: bool


class ChangeFeedProtocol(Protocol):
    def subscribe(self, room_id: str, callback: FeedCallback) -> FeedHandle:
        pass

    def unsubscribe(self, handle: FeedHandle) -> None:
        pass


class InferenceClientProtocol(Protocol):
    async def invoke(self, request: dict[str, Any]) -> dict[str, Any]:
        pass
