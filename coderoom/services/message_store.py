from __future__ import annotations

import logging
from collections.abc import Iterable

from coderoom.event_bus import EventBus
from coderoom.event_helpers import emit_messages_changed
from coderoom.models import Message

logger = logging.getLogger(__name__)


class MessageStore:
    """Ordered, id-deduplicated messages for the active room.

    ``append`` is the only way a message enters the store after the initial
    load, so optimistic echoes, feed pushes and AI replies all converge here.
    Reply targets are resolved once, against whatever is held at that moment.
    """

    def __init__(self, bus: EventBus | None = None):
        self.bus = bus
        self.room_id: str | None = None
        self._messages: list[Message] = []
        self._by_id: dict[str, Message] = {}

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def ids(self) -> list[str]:
        return [message.id for message in self._messages]

    def get(self, message_id: str | None) -> Message | None:
        if message_id is None:
            return None
        return self._by_id.get(message_id)

    def load(self, batch: Iterable[Message], room_id: str | None = None) -> None:
        if room_id is not None:
            self.room_id = room_id
        ordered: list[Message] = []
        seen: set[str] = set()
        for message in sorted(batch, key=lambda item: item.created_at):
            if message.id in seen:
                continue
            seen.add(message.id)
            ordered.append(message)

        batch_by_id = {message.id: message for message in ordered}
        resolved = [
            message.with_reply(batch_by_id.get(message.reply_to_id))
            if message.reply_to_id
            else message.with_reply(None)
            for message in ordered
        ]
        # Entries appended while the batch was in flight stay, after the batch.
        late = [message for message in self._messages if message.id not in seen]
        self._messages = resolved + late
        self._by_id = {message.id: message for message in self._messages}
        emit_messages_changed(self.bus, self.room_id, len(self._messages))

    def append(self, candidate: Message) -> bool:
        if candidate.id in self._by_id:
            logger.debug("Ignoring duplicate message id=%s", candidate.id)
            return False
        message = candidate.with_reply(self.get(candidate.reply_to_id))
        self._messages.append(message)
        self._by_id[message.id] = message
        emit_messages_changed(self.bus, self.room_id, len(self._messages))
        return True

    def clear(self) -> None:
        had_messages = bool(self._messages)
        self._messages = []
        self._by_id = {}
        room_id = self.room_id
        self.room_id = None
        if had_messages:
            emit_messages_changed(self.bus, room_id, 0)
