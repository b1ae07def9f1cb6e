from __future__ import annotations

import logging

from pydantic import ValidationError

from coderoom.constants import NOTICE_SEND_FAILED
from coderoom.errors import PersistenceError
from coderoom.event_bus import EventBus
from coderoom.event_helpers import emit_error
from coderoom.models import Message
from coderoom.repositories.interfaces import RoomRepositoryProtocol
from coderoom.services.ai_service import AiResponseOrchestrator, extract_ai_prompt
from coderoom.services.message_store import MessageStore
from coderoom.state import RoomState

logger = logging.getLogger(__name__)


class OptimisticWriteCoordinator:
    def __init__(
        self,
        repository: RoomRepositoryProtocol,
        state: RoomState,
        store: MessageStore,
        ai: AiResponseOrchestrator | None = None,
        bus: EventBus | None = None,
    ):
        self.repository = repository
        self.state = state
        self.store = store
        self.ai = ai
        self.bus = bus

    async def send(self, content: str, reply_to_id: str | None = None) -> Message | None:
        """Persist ``content`` and echo the stored row without waiting for the feed.

        Returns the committed message, or None when nothing was stored.
        """
        text = content.strip()
        room_id = self.state.room_id
        username = self.state.username
        if not text or room_id is None or username is None:
            return None

        if reply_to_id is not None and self.store.get(reply_to_id) is None:
            logger.debug("Reply target %s not held locally", reply_to_id)

        try:
            row = await self.repository.insert_message(
                room_id=room_id,
                author=username,
                content=text,
                reply_to_id=reply_to_id,
                is_ai_generated=False,
            )
        except PersistenceError as exc:
            logger.warning("Failed to send message in room %s: %s", room_id, exc)
            if self.state.is_current(room_id):
                emit_error(self.bus, NOTICE_SEND_FAILED, source="write")
            return None

        if not self.state.is_current(room_id):
            logger.debug("Discarding send completion for inactive room %s", room_id)
            return None
        try:
            message = Message.from_dict(row)
        except ValidationError as exc:
            logger.warning("Dropping malformed message row: %s", exc)
            emit_error(self.bus, NOTICE_SEND_FAILED, source="write")
            return None
        self.store.append(message)

        prompt = extract_ai_prompt(text)
        if prompt and self.ai is not None:
            await self.ai.respond(prompt, self.state.room_code, message.id, room_id)
        return message
