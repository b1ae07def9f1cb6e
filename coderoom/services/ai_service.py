from __future__ import annotations

import logging
import re

from pydantic import ValidationError

from coderoom.constants import (
    AI_ASSISTANT_NAME,
    AI_FALLBACK_REPLY,
    AI_MENTION_TOKEN,
    NOTICE_AI_PERSIST_FAILED,
)
from coderoom.errors import PersistenceError
from coderoom.event_bus import EventBus
from coderoom.event_helpers import emit_ai_thinking, emit_error
from coderoom.models import InferenceReply, InferenceRequest, Message
from coderoom.repositories.interfaces import (
    InferenceClientProtocol,
    RoomRepositoryProtocol,
)
from coderoom.services.message_store import MessageStore
from coderoom.state import RoomState

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(
    rf"^{re.escape(AI_MENTION_TOKEN)}(?::|\s|$)(.*)$", re.IGNORECASE | re.DOTALL
)


def extract_ai_prompt(content: str) -> str | None:
    """Return the prompt after a leading ``@ai`` mention, or None if absent."""
    match = MENTION_PATTERN.match(content.strip())
    if match is None:
        return None
    return match.group(1).strip()


def is_ai_mention(content: str) -> bool:
    return bool(extract_ai_prompt(content))


class AiResponseOrchestrator:
    def __init__(
        self,
        repository: RoomRepositoryProtocol,
        inference: InferenceClientProtocol,
        state: RoomState,
        store: MessageStore,
        bus: EventBus | None = None,
    ):
        self.repository = repository
        self.inference = inference
        self.state = state
        self.store = store
        self.bus = bus

    async def respond(
        self,
        prompt: str,
        room_context: str | None,
        originating_message_id: str,
        room_id: str | None = None,
    ) -> Message | None:
        room_id = room_id or self.state.room_id
        if room_id is None or not self.state.is_current(room_id):
            return None

        self._set_thinking(room_id, 1)
        try:
            reply_text = await self._invoke(prompt, room_context)
            if not self.state.is_current(room_id):
                logger.debug("Discarding AI reply for inactive room %s", room_id)
                return None
            return await self._commit(room_id, reply_text, originating_message_id)
        finally:
            self._set_thinking(room_id, -1)

    async def _invoke(self, prompt: str, room_context: str | None) -> str:
        request = InferenceRequest(prompt=prompt, room_context=room_context)
        try:
            raw = await self.inference.invoke(request.model_dump())
            return InferenceReply.model_validate(raw).reply
        except ValidationError as exc:
            logger.warning("Inference returned a malformed reply: %s", exc)
        except Exception as exc:
            logger.warning("Inference call failed: %s", exc)
        return AI_FALLBACK_REPLY

    async def _commit(
        self, room_id: str, content: str, originating_message_id: str
    ) -> Message | None:
        try:
            row = await self.repository.insert_message(
                room_id=room_id,
                author=AI_ASSISTANT_NAME,
                content=content,
                reply_to_id=originating_message_id,
                is_ai_generated=True,
            )
        except PersistenceError as exc:
            logger.warning("Failed to persist AI reply in room %s: %s", room_id, exc)
            if self.state.is_current(room_id):
                emit_error(self.bus, NOTICE_AI_PERSIST_FAILED, source="ai")
            return None
        if not self.state.is_current(room_id):
            logger.debug("Discarding AI reply commit for inactive room %s", room_id)
            return None
        try:
            message = Message.from_dict(row)
        except ValidationError as exc:
            logger.warning("Dropping malformed AI reply row: %s", exc)
            return None
        self.store.append(message)
        return message

    def _set_thinking(self, room_id: str, delta: int) -> None:
        if not self.state.is_current(room_id):
            return
        was_thinking = self.state.ai_thinking
        self.state.ai_requests_in_flight = max(
            0, self.state.ai_requests_in_flight + delta
        )
        if self.state.ai_thinking != was_thinking:
            emit_ai_thinking(self.bus, room_id, self.state.ai_thinking)
