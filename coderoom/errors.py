class CodeRoomError(Exception):
    """Base class for every error raised by the room engine."""


class RoomValidationError(CodeRoomError):
    """Caller input was rejected before any state was touched."""


class RoomNotFoundError(RoomValidationError):
    def __init__(self, code: str):
        super().__init__(f"No room with code '{code}'.")
        self.code = code


class UsernameTakenError(RoomValidationError):
    def __init__(self, username: str, room_id: str):
        super().__init__(f"Username '{username}' is already in room {room_id}.")
        self.username = username
        self.room_id = room_id


class PersistenceError(CodeRoomError):
    """The storage collaborator was unreachable or rejected a write."""


class InferenceError(CodeRoomError):
    """The inference collaborator failed or answered with garbage."""
