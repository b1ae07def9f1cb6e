from __future__ import annotations

import logging
from collections.abc import Iterable

from coderoom.event_bus import EventBus
from coderoom.event_helpers import emit_members_changed
from coderoom.models import RoomMember

logger = logging.getLogger(__name__)


class MembershipRoster:
    def __init__(self, bus: EventBus | None = None):
        self.bus = bus
        self.room_id: str | None = None
        self._members: dict[str, RoomMember] = {}

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, member_id: object) -> bool:
        return member_id in self._members

    @property
    def members(self) -> tuple[RoomMember, ...]:
        return tuple(self._members.values())

    @property
    def usernames(self) -> list[str]:
        return [member.username for member in self._members.values()]

    def load(self, batch: Iterable[RoomMember], room_id: str | None = None) -> None:
        if room_id is not None:
            self.room_id = room_id
        loaded = {member.id: member for member in batch}
        # Members pushed while the batch was in flight stay.
        for member_id, member in self._members.items():
            loaded.setdefault(member_id, member)
        self._members = loaded
        self._publish()

    def add(self, member: RoomMember) -> bool:
        if member.id in self._members:
            logger.debug("Ignoring duplicate member id=%s", member.id)
            return False
        self._members[member.id] = member
        self._publish()
        return True

    def remove(self, member_id: str) -> bool:
        if self._members.pop(member_id, None) is None:
            return False
        self._publish()
        return True

    def has_username(self, username: str) -> bool:
        return any(member.username == username for member in self._members.values())

    def clear(self) -> None:
        had_members = bool(self._members)
        self._members = {}
        room_id = self.room_id
        self.room_id = None
        if had_members:
            emit_members_changed(self.bus, room_id, 0)

    def _publish(self) -> None:
        emit_members_changed(self.bus, self.room_id, len(self._members))
