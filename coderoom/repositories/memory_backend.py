from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import uuid4

from coderoom.errors import PersistenceError
from coderoom.models import utc_now
from coderoom.repositories.interfaces import FeedCallback

logger = logging.getLogger(__name__)


class FeedSubscription:
    def __init__(self, room_id: str, callback: FeedCallback):
        self.id = uuid4().hex
        self.room_id = room_id
        self.callback = callback
        self.active = True


class InMemoryRoomBackend:
    """Persistence and change feed for a single process.

    Feed rows are handed to subscribers on the next loop iteration, never
    inline with the write, the same way a remote feed would race the
    writer's own echo.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, dict[str, Any]] = {}
        self._messages: dict[str, list[dict[str, Any]]] = {}
        self._members: dict[str, list[dict[str, Any]]] = {}
        self._subscriptions: list[FeedSubscription] = []

    async def create_room(self, code: str, admin_username: str) -> dict[str, Any]:
        if any(room["code"] == code for room in self._rooms.values()):
            raise PersistenceError(f"Room code '{code}' already exists.")
        room = {
            "id": uuid4().hex,
            "code": code,
            "admin_username": admin_username,
            "created_at": utc_now().isoformat(),
        }
        self._rooms[room["id"]] = room
        self._messages[room["id"]] = []
        self._members[room["id"]] = []
        return dict(room)

    async def find_room_by_code(self, code: str) -> dict[str, Any] | None:
        for room in self._rooms.values():
            if room["code"] == code:
                return dict(room)
        return None

    async def find_member(self, room_id: str, username: str) -> dict[str, Any] | None:
        for member in self._members.get(room_id, []):
            if member["username"] == username:
                return dict(member)
        return None

    async def add_member(self, room_id: str, username: str) -> dict[str, Any]:
        self._require_room(room_id)
        member = {
            "id": uuid4().hex,
            "room_id": room_id,
            "username": username,
            "joined_at": utc_now().isoformat(),
        }
        self._members[room_id].append(member)
        self.emit({"entity": "member", "operation": "insert", "payload": member}, room_id)
        return dict(member)

    async def remove_member(self, room_id: str, username: str) -> None:
        members = self._members.get(room_id, [])
        for member in list(members):
            if member["username"] != username:
                continue
            members.remove(member)
            self.emit(
                {
                    "entity": "member",
                    "operation": "delete",
                    "payload": {"id": member["id"], "room_id": room_id},
                },
                room_id,
            )

    async def insert_message(
        self,
        *,
        room_id: str,
        author: str,
        content: str,
        reply_to_id: str | None,
        is_ai_generated: bool,
    ) -> dict[str, Any]:
        self._require_room(room_id)
        row = {
            "id": uuid4().hex,
            "room_id": room_id,
            "username": author,
            "content": content,
            "reply_to_id": reply_to_id,
            "is_ai": is_ai_generated,
            "created_at": utc_now().isoformat(),
        }
        self._messages[room_id].append(row)
        self.emit({"entity": "message", "operation": "insert", "payload": row}, room_id)
        return dict(row)

    async def list_messages(self, room_id: str) -> list[dict[str, Any]]:
        rows = self._messages.get(room_id, [])
        return sorted((dict(row) for row in rows), key=lambda row: row["created_at"])

    async def list_members(self, room_id: str) -> list[dict[str, Any]]:
        return [dict(member) for member in self._members.get(room_id, [])]

    async def delete_room(self, room_id: str) -> None:
        if self._rooms.pop(room_id, None) is None:
            raise PersistenceError(f"Room {room_id} does not exist.")
        self._messages.pop(room_id, None)
        self._members.pop(room_id, None)
        # Room deletes reach every subscriber; clients filter by id.
        self.emit({"entity": "room", "operation": "delete", "payload": {"id": room_id}})
        logger.info("Room %s deleted with its members and messages", room_id)

    def subscribe(self, room_id: str, callback: FeedCallback) -> FeedSubscription:
        subscription = FeedSubscription(room_id, callback)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, handle: FeedSubscription) -> None:
        handle.active = False
        if handle in self._subscriptions:
            self._subscriptions.remove(handle)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def emit(self, event: dict[str, Any], room_id: str | None = None) -> None:
        """Queue a feed row for subscribers of ``room_id`` (all rooms when None)."""
        loop = asyncio.get_running_loop()
        for subscription in list(self._subscriptions):
            if room_id is not None and subscription.room_id != room_id:
                continue
            loop.call_soon(self._deliver, subscription, dict(event))

    async def flush(self) -> None:
        """Let every queued feed row reach its subscriber."""
        for _ in range(3):
            await asyncio.sleep(0)

    def _deliver(self, subscription: FeedSubscription, event: dict[str, Any]) -> None:
        if not subscription.active:
            return
        subscription.callback(event)

    def _require_room(self, room_id: str) -> None:
        if room_id not in self._rooms:
            raise PersistenceError(f"Room {room_id} does not exist.")
