from __future__ import annotations

import logging
import secrets

from pydantic import ValidationError

from coderoom.constants import (
    MAX_USERNAME_LENGTH,
    NOTICE_CREATE_FAILED,
    NOTICE_JOIN_FAILED,
    NOTICE_LEAVE_FAILED,
    NOTICE_LOAD_FAILED,
    NOTICE_ROOM_CLOSED,
    NOTICE_ROOM_NOT_FOUND,
    NOTICE_USERNAME_TAKEN,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_ATTEMPTS,
    ROOM_CODE_LENGTH,
)
from coderoom.errors import (
    PersistenceError,
    RoomNotFoundError,
    RoomValidationError,
    UsernameTakenError,
)
from coderoom.event_bus import EventBus
from coderoom.event_helpers import (
    emit_error,
    emit_loading,
    emit_notice,
    emit_room_closed,
    emit_session_changed,
)
from coderoom.models import Message, Room, RoomMember, RoomSnapshot
from coderoom.repositories.interfaces import RoomRepositoryProtocol
from coderoom.services.feed_service import ChangeFeedSubscriber
from coderoom.services.message_store import MessageStore
from coderoom.services.roster import MembershipRoster
from coderoom.services.write_service import OptimisticWriteCoordinator
from coderoom.state import RoomState

logger = logging.getLogger(__name__)


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def normalize_username(username: str) -> str:
    cleaned = (username or "").strip()
    if not cleaned:
        raise RoomValidationError("Username is required.")
    if len(cleaned) > MAX_USERNAME_LENGTH:
        raise RoomValidationError(
            f"Username must be at most {MAX_USERNAME_LENGTH} characters."
        )
    return cleaned


def normalize_room_code(code: str) -> str:
    cleaned = (code or "").strip().upper()
    if not cleaned:
        raise RoomValidationError("Room code is required.")
    return cleaned


class RoomSession:
    """Identity and lifecycle of the client's single active room.

    Entering a room swaps the feed subscription before anything is loaded;
    leaving, closing, or a matching room-delete push all end in the same
    local teardown.
    """

    def __init__(
        self,
        repository: RoomRepositoryProtocol,
        state: RoomState,
        store: MessageStore,
        roster: MembershipRoster,
        subscriber: ChangeFeedSubscriber,
        writer: OptimisticWriteCoordinator,
        bus: EventBus | None = None,
    ):
        self.repository = repository
        self.state = state
        self.store = store
        self.roster = roster
        self.subscriber = subscriber
        self.writer = writer
        self.bus = bus
        self.subscriber.on_room_deleted = self.handle_room_deleted

    async def create(self, username: str) -> str:
        username = normalize_username(username)
        self._set_loading(True)
        try:
            code = await self._allocate_code()
            row = await self.repository.create_room(code, username)
            try:
                room = Room.from_dict(row)
                await self.repository.add_member(room.id, username)
            except (PersistenceError, ValidationError):
                await self._discard_room(row.get("id"))
                raise
            await self._enter(room, username, is_admin=True)
            logger.info("Created room %s (%s) as %s", room.code, room.id, username)
            return room.code
        except (PersistenceError, ValidationError) as exc:
            logger.warning("Failed to create room: %s", exc)
            emit_error(self.bus, NOTICE_CREATE_FAILED, source="session")
            if isinstance(exc, ValidationError):
                raise PersistenceError("Room record was malformed.") from exc
            raise
        finally:
            self._set_loading(False)

    async def join(self, code: str, username: str) -> RoomSnapshot:
        code = normalize_room_code(code)
        username = normalize_username(username)
        self._set_loading(True)
        try:
            row = await self.repository.find_room_by_code(code)
            if row is None:
                emit_error(self.bus, NOTICE_ROOM_NOT_FOUND, source="session")
                raise RoomNotFoundError(code)
            room = Room.from_dict(row)
            if await self.repository.find_member(room.id, username) is not None:
                emit_error(self.bus, NOTICE_USERNAME_TAKEN, source="session")
                raise UsernameTakenError(username, room.id)
            await self.repository.add_member(room.id, username)
            await self._enter(room, username, is_admin=room.admin_username == username)
            logger.info("Joined room %s (%s) as %s", room.code, room.id, username)
            return self.snapshot()
        except (PersistenceError, ValidationError) as exc:
            logger.warning("Failed to join room %s: %s", code, exc)
            emit_error(self.bus, NOTICE_JOIN_FAILED, source="session")
            if isinstance(exc, ValidationError):
                raise PersistenceError("Room record was malformed.") from exc
            raise
        finally:
            self._set_loading(False)

    async def leave(self) -> None:
        room_id = self.state.room_id
        username = self.state.username
        if room_id is None or username is None:
            return
        is_admin = self.state.is_admin
        try:
            if is_admin:
                await self.repository.delete_room(room_id)
            else:
                await self.repository.remove_member(room_id, username)
        except PersistenceError as exc:
            logger.warning("Failed to leave room %s: %s", room_id, exc)
            emit_error(self.bus, NOTICE_LEAVE_FAILED, source="session")
            raise
        finally:
            # Only tear down if nothing else already replaced or closed the room.
            if self.state.is_current(room_id):
                self._teardown()
        logger.info(
            "Left room %s as %s%s", room_id, username, " (room deleted)" if is_admin else ""
        )

    def close(self) -> None:
        """Drop the local session and feed without touching the remote room."""
        if self.state.in_room:
            self._teardown()
        else:
            self.subscriber.stop()

    async def send(self, content: str, reply_to_id: str | None = None) -> Message | None:
        return await self.writer.send(content, reply_to_id)

    def handle_room_deleted(self, room_id: str) -> None:
        if not self.state.is_current(room_id):
            logger.debug("Ignoring delete for inactive room %s", room_id)
            return
        self._teardown()
        logger.info("Room %s was closed by its admin", room_id)
        emit_room_closed(self.bus, room_id)
        emit_notice(self.bus, NOTICE_ROOM_CLOSED, source="feed")

    def snapshot(self) -> RoomSnapshot:
        return RoomSnapshot(
            room_id=self.state.room_id,
            room_code=self.state.room_code,
            username=self.state.username,
            is_admin=self.state.is_admin,
            messages=self.store.messages,
            members=self.roster.members,
            loading=self.state.loading,
            ai_thinking=self.state.ai_thinking,
        )

    async def _discard_room(self, room_id: str | None) -> None:
        if not room_id:
            return
        try:
            await self.repository.delete_room(str(room_id))
        except PersistenceError as exc:
            logger.warning("Failed to remove half-created room %s: %s", room_id, exc)

    async def _allocate_code(self) -> str:
        for _ in range(ROOM_CODE_ATTEMPTS):
            code = generate_room_code()
            if await self.repository.find_room_by_code(code) is None:
                return code
        raise PersistenceError("Could not allocate a free room code.")

    async def _enter(self, room: Room, username: str, *, is_admin: bool) -> None:
        self.subscriber.stop()
        self.store.clear()
        self.roster.clear()
        self.state.clear()
        self.state.enter(room.id, room.code, username, is_admin)
        self.store.room_id = room.id
        self.roster.room_id = room.id
        self.subscriber.start(room.id)
        emit_session_changed(self.bus, self.state)
        await self._load_room(room.id)

    async def _load_room(self, room_id: str) -> None:
        try:
            message_rows = await self.repository.list_messages(room_id)
            member_rows = await self.repository.list_members(room_id)
        except PersistenceError as exc:
            logger.warning("Failed to load room %s: %s", room_id, exc)
            if self.state.is_current(room_id):
                emit_error(self.bus, NOTICE_LOAD_FAILED, source="session")
            return
        if not self.state.is_current(room_id):
            logger.debug("Discarding history load for inactive room %s", room_id)
            return
        self.store.load(_parse_rows(Message, message_rows), room_id)
        self.roster.load(_parse_rows(RoomMember, member_rows), room_id)

    def _teardown(self) -> None:
        self.subscriber.stop()
        self.store.clear()
        self.roster.clear()
        self.state.clear()
        emit_session_changed(self.bus, self.state)

    def _set_loading(self, loading: bool) -> None:
        if self.state.loading == loading:
            return
        self.state.loading = loading
        emit_loading(self.bus, loading)


def _parse_rows(model: type, rows: list[dict]) -> list:
    parsed = []
    for row in rows:
        try:
            parsed.append(model.from_dict(row))
        except ValidationError as exc:
            logger.warning("Dropping malformed %s row: %s", model.__name__, exc)
    return parsed
