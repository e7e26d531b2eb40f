"""Inbound Socket.IO payloads, one model per event.

Payloads are validated here before any handler touches room state.
Wire names are camelCase; the models expose snake_case attributes.
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

AVATAR_PATTERN = r"^Capy-face-\w+\.png$"
COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"
NICKNAME_MAX_LEN = 20
MAX_WPM = 500
MAX_ERRORS = 1000

Category = Literal["quotes", "code", "facts", "stories", "technical", "literature"]
Difficulty = Literal["easy", "medium", "hard"]


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class _RoomMessage(_Message):
    room_id: str = Field(alias="roomId", min_length=1, max_length=256)


class CreateRoomMessage(_Message):
    nickname: str
    avatar: str = Field(pattern=AVATAR_PATTERN)
    color: str = Field(pattern=COLOR_PATTERN)

    @field_validator("nickname")
    @classmethod
    def _check_nickname(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Nickname cannot be empty.")
        if len(value) > NICKNAME_MAX_LEN:
            raise ValueError(f"Nickname cannot be longer than {NICKNAME_MAX_LEN} characters.")
        if "<" in value or ">" in value or any(ord(ch) < 32 for ch in value):
            raise ValueError("Nickname contains invalid characters.")
        return value


class JoinRoomMessage(CreateRoomMessage):
    room_id: str = Field(alias="roomId", min_length=1, max_length=256)


class StartGameMessage(_RoomMessage):
    text: Optional[str] = Field(default=None, min_length=10, max_length=2000)
    category: Optional[Category] = None
    difficulty: Optional[Difficulty] = None


class UpdateProgressMessage(_RoomMessage):
    progress: float = Field(ge=0, le=100)


class UpdatePlayerStatsMessage(_Message):
    wpm: float = Field(ge=0, le=MAX_WPM)
    errors: int = Field(ge=0, le=MAX_ERRORS)
    progress: float = Field(ge=0, le=100)


class PlayerFinishedMessage(UpdatePlayerStatsMessage):
    time: float = Field(ge=0)


class ChangePlayerColorMessage(_Message):
    player_id: str = Field(alias="playerId", min_length=1)
    color: str = Field(pattern=COLOR_PATTERN)
    avatar: Optional[str] = Field(default=None, pattern=AVATAR_PATTERN)


class ReturnToLobbyMessage(_RoomMessage):
    pass


def describe_error(exc: ValidationError) -> str:
    """First problem in a form fit for showing to the player."""
    errors = exc.errors()
    if not errors:
        return "Invalid data provided"
    first = errors[0]
    message = str(first.get("msg", "Invalid data provided"))
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {message}" if field else message
