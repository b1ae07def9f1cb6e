from __future__ import annotations

import asyncio
import json
import logging
import os
import random
import time
from pathlib import Path
from typing import Any
from uuid import uuid4

import portalocker
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from coderoom.constants import (
    LOCK_BACKOFF_BASE_SECONDS,
    LOCK_BACKOFF_MAX_SECONDS,
    LOCK_MAX_ATTEMPTS,
    LOCK_TIMEOUT_SECONDS,
    ROOM_LOG_FILE,
    ROOMS_INDEX_FILE,
)
from coderoom.errors import PersistenceError
from coderoom.models import utc_now
from coderoom.repositories.interfaces import FeedCallback

logger = logging.getLogger(__name__)


class RoomLogWatchHandler(FileSystemEventHandler):
    def __init__(self, watch: "FileFeedWatch"):
        super().__init__()
        self.watch = watch

    def _handle_path(self, path: str) -> None:
        normalized = str(path).replace("\\", "/").lower()
        if normalized.endswith("/" + ROOM_LOG_FILE):
            self.watch.signal()

    def on_created(self, event) -> None:
        if getattr(event, "is_directory", False):
            return
        self._handle_path(getattr(event, "src_path", ""))

    def on_modified(self, event) -> None:
        if getattr(event, "is_directory", False):
            return
        self._handle_path(getattr(event, "src_path", ""))

    def on_moved(self, event) -> None:
        if getattr(event, "is_directory", False):
            return
        self._handle_path(getattr(event, "dest_path", ""))


class FileFeedWatch:
    """Tails one room's change log from a byte offset.

    The watchdog thread only calls ``signal``; reading and delivery happen
    on the event loop.
    """

    def __init__(
        self,
        room_id: str,
        log_path: Path,
        callback: FeedCallback,
        loop: asyncio.AbstractEventLoop,
    ):
        self.room_id = room_id
        self.log_path = log_path
        self.callback = callback
        self.loop = loop
        self.active = True
        self.offset = log_path.stat().st_size if log_path.exists() else 0
        self.observer: Any = None

    def signal(self) -> None:
        if not self.active:
            return
        try:
            self.loop.call_soon_threadsafe(self.drain)
        except RuntimeError:
            # Loop already closed.
            self.active = False

    def drain(self) -> None:
        if not self.active or not self.log_path.exists():
            return
        try:
            with open(self.log_path, "r", encoding="utf-8") as f:
                current_size = os.path.getsize(self.log_path)
                if current_size < self.offset:
                    logger.warning(
                        "Change log for room %s shrank from offset %s to %s; resetting.",
                        self.room_id,
                        self.offset,
                        current_size,
                    )
                    self.offset = 0
                f.seek(self.offset)
                new_lines = f.readlines()
                # Keep a trailing partial row for the next drain.
                if new_lines and not new_lines[-1].endswith("\n"):
                    new_lines.pop()
                self.offset += sum(len(line.encode("utf-8")) for line in new_lines)
        except OSError as exc:
            logger.warning("Failed tailing change log %s: %s", self.log_path, exc)
            return
        for line in new_lines:
            row = parse_log_line(line)
            if row is None:
                continue
            if not self.active:
                return
            self.callback(row)


def parse_log_line(line: str) -> dict[str, Any] | None:
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.warning("Invalid change log row ignored.")
        return None
    if not isinstance(data, dict):
        return None
    return data


class FileRoomBackend:
    """Rooms kept as append-only JSONL logs in a shared directory.

    ``rooms.jsonl`` indexes room creation and deletion; each room directory
    holds ``changes.jsonl`` with the same ``{entity, operation, payload}`` rows
    the change feed delivers.
    """

    def __init__(self, data_dir: str | Path):
        self.root = Path(data_dir)
        self._watches: list[FileFeedWatch] = []

    def index_path(self) -> Path:
        return self.root / ROOMS_INDEX_FILE

    def get_room_dir(self, room_id: str) -> Path:
        base = self.root.resolve()
        target = (base / room_id).resolve()
        if target.parent != base:
            raise PersistenceError("Invalid room path.")
        return target

    def get_log_path(self, room_id: str) -> Path:
        return self.get_room_dir(room_id) / ROOM_LOG_FILE

    async def create_room(self, code: str, admin_username: str) -> dict[str, Any]:
        if await self.find_room_by_code(code) is not None:
            raise PersistenceError(f"Room code '{code}' already exists.")
        room = {
            "id": uuid4().hex,
            "code": code,
            "admin_username": admin_username,
            "created_at": utc_now().isoformat(),
        }
        await asyncio.to_thread(self._prepare_room_dir, room["id"])
        await self._append(self.index_path(), {"operation": "insert", "payload": room})
        return room

    async def find_room_by_code(self, code: str) -> dict[str, Any] | None:
        rooms = await asyncio.to_thread(self._fold_rooms)
        for room in rooms.values():
            if room.get("code") == code:
                return room
        return None

    async def find_member(self, room_id: str, username: str) -> dict[str, Any] | None:
        for member in await self.list_members(room_id):
            if member.get("username") == username:
                return member
        return None

    async def add_member(self, room_id: str, username: str) -> dict[str, Any]:
        await self._require_room(room_id)
        member = {
            "id": uuid4().hex,
            "room_id": room_id,
            "username": username,
            "joined_at": utc_now().isoformat(),
        }
        await self._append_change(room_id, "member", "insert", member)
        return member

    async def remove_member(self, room_id: str, username: str) -> None:
        for member in await self.list_members(room_id):
            if member.get("username") != username:
                continue
            await self._append_change(
                room_id, "member", "delete", {"id": member["id"], "room_id": room_id}
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
        await self._require_room(room_id)
        row = {
            "id": uuid4().hex,
            "room_id": room_id,
            "username": author,
            "content": content,
            "reply_to_id": reply_to_id,
            "is_ai": is_ai_generated,
            "created_at": utc_now().isoformat(),
        }
        await self._append_change(room_id, "message", "insert", row)
        return row

    async def list_messages(self, room_id: str) -> list[dict[str, Any]]:
        messages, _members, deleted = await asyncio.to_thread(self._fold_room, room_id)
        if deleted:
            return []
        return sorted(messages, key=lambda row: str(row.get("created_at", "")))

    async def list_members(self, room_id: str) -> list[dict[str, Any]]:
        _messages, members, deleted = await asyncio.to_thread(self._fold_room, room_id)
        if deleted:
            return []
        return members

    async def delete_room(self, room_id: str) -> None:
        await self._require_room(room_id)
        payload = {"id": room_id}
        await self._append_change(room_id, "room", "delete", payload)
        await self._append(self.index_path(), {"operation": "delete", "payload": payload})
        logger.info("Room %s deleted with its members and messages", room_id)

    def subscribe(self, room_id: str, callback: FeedCallback) -> FileFeedWatch:
        loop = asyncio.get_running_loop()
        log_path = self.get_log_path(room_id)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        watch = FileFeedWatch(room_id, log_path, callback, loop)
        observer = Observer()
        observer.schedule(RoomLogWatchHandler(watch), str(log_path.parent), recursive=False)
        observer.daemon = True
        observer.start()
        watch.observer = observer
        self._watches.append(watch)
        return watch

    def unsubscribe(self, handle: FileFeedWatch) -> None:
        handle.active = False
        observer = handle.observer
        handle.observer = None
        if handle in self._watches:
            self._watches.remove(handle)
        if observer is None:
            return
        try:
            observer.stop()
            observer.join(timeout=2.0)
        except RuntimeError as exc:
            logger.warning("Failed stopping watcher for room %s: %s", handle.room_id, exc)

    async def _require_room(self, room_id: str) -> None:
        rooms = await asyncio.to_thread(self._fold_rooms)
        if room_id not in rooms:
            raise PersistenceError(f"Room {room_id} does not exist.")

    async def _append_change(
        self, room_id: str, entity: str, operation: str, payload: dict[str, Any]
    ) -> None:
        row = {"entity": entity, "operation": operation, "payload": payload}
        await self._append(self.get_log_path(room_id), row)

    async def _append(self, path: Path, row: dict[str, Any]) -> None:
        if not await asyncio.to_thread(self.write_row, path, row):
            raise PersistenceError(f"Could not write to {path.name}.")

    def _prepare_room_dir(self, room_id: str) -> None:
        try:
            self.get_room_dir(room_id).mkdir(parents=True, exist_ok=True)
            self.get_log_path(room_id).touch(exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Could not create room directory: {exc}") from exc

    def write_row(self, path: Path, row: dict[str, Any]) -> bool:
        path.parent.mkdir(parents=True, exist_ok=True)
        for attempt in range(LOCK_MAX_ATTEMPTS):
            try:
                with portalocker.Lock(
                    str(path),
                    mode="a",
                    timeout=LOCK_TIMEOUT_SECONDS,
                    fail_when_locked=True,
                    encoding="utf-8",
                ) as f:
                    f.write(json.dumps(row, ensure_ascii=True) + "\n")
                    f.flush()
                    os.fsync(f.fileno())
                return True
            except portalocker.exceptions.LockException:
                pass
            except OSError as exc:
                logger.warning("Write to %s failed: %s", path, exc)

            if attempt == LOCK_MAX_ATTEMPTS - 1:
                break
            delay = min(
                LOCK_BACKOFF_MAX_SECONDS,
                LOCK_BACKOFF_BASE_SECONDS * (2 ** min(attempt, 5)),
            )
            time.sleep(delay + random.uniform(0, 0.03))
        return False

    def read_rows(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except OSError as exc:
            raise PersistenceError(f"Could not read {path.name}: {exc}") from exc
        rows = []
        for line in lines:
            row = parse_log_line(line)
            if row is not None:
                rows.append(row)
        return rows

    def _fold_rooms(self) -> dict[str, dict[str, Any]]:
        rooms: dict[str, dict[str, Any]] = {}
        for row in self.read_rows(self.index_path()):
            payload = row.get("payload")
            if not isinstance(payload, dict) or "id" not in payload:
                continue
            if row.get("operation") == "insert":
                rooms[str(payload["id"])] = payload
            elif row.get("operation") == "delete":
                rooms.pop(str(payload["id"]), None)
        return rooms

    def _fold_room(
        self, room_id: str
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]], bool]:
        messages: list[dict[str, Any]] = []
        members: dict[str, dict[str, Any]] = {}
        deleted = False
        for row in self.read_rows(self.get_log_path(room_id)):
            payload = row.get("payload")
            if not isinstance(payload, dict):
                continue
            entity = row.get("entity")
            operation = row.get("operation")
            if entity == "message" and operation == "insert":
                messages.append(payload)
            elif entity == "member" and operation == "insert":
                members[str(payload.get("id"))] = payload
            elif entity == "member" and operation == "delete":
                members.pop(str(payload.get("id")), None)
            elif entity == "room" and operation == "delete":
                deleted = True
        return messages, list(members.values()), deleted
