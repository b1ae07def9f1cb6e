from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RoomState:
    room_id: str | None = None
    room_code: str | None = None
    username: str | None = None
    is_admin: bool = False
    loading: bool = False
    ai_requests_in_flight: int = 0

    @property
    def in_room(self) -> bool:
        return self.room_id is not None

    @property
    def ai_thinking(self) -> bool:
        return self.ai_requests_in_flight > 0

    def is_current(self, room_id: str | None) -> bool:
        return room_id is not None and self.room_id == room_id

    def enter(self, room_id: str, room_code: str, username: str, is_admin: bool) -> None:
        self.room_id = room_id
        self.room_code = room_code
        self.username = username
        self.is_admin = is_admin

    def clear(self) -> None:
        self.room_id = None
        self.room_code = None
        self.username = None
        self.is_admin = False
        self.ai_requests_in_flight = 0
