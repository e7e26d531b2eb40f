from __future__ import annotations


class RoomError(Exception):
    """Base for failures reported back to the requesting connection only."""

    code = "room_error"
    default_message = "Room error occurred"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"code": self.code, "message": self.message}


class RoomNotFound(RoomError):
    code = "room_not_found"
    default_message = "Room not found"


class PlayerNotFound(RoomError):
    code = "player_not_found"
    default_message = "Player not found"


class Unauthorized(RoomError):
    code = "unauthorized"
    default_message = "Only the host can do that"


class InvalidState(RoomError):
    code = "invalid_state"
    default_message = "That action is not allowed right now"


class RaceAlreadyStarted(InvalidState):
    code = "race_already_started"
    default_message = "Game has already started"


class RoomFull(RoomError):
    code = "room_full"
    default_message = "Room is full"


class RoomCodeError(RoomError):
    """Room code could not be decrypted. Callers report it as RoomNotFound."""

    code = "invalid_room_code"
    default_message = "Invalid room code"
