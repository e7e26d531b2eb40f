from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping


def _split_origins(raw: str) -> list[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = _split_origins(
        os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Shared with the frontend, which builds the same codes in the browser.
    ROOM_CODE_SECRET = os.environ.get("ROOM_CODE_SECRET", "capytype-shared-secret")

    # Rooms
    MAX_PLAYERS = int(os.environ.get("MAX_PLAYERS", "32"))
    HOST_GRACE_PERIOD_SEC = float(os.environ.get("HOST_GRACE_PERIOD_SEC", "30"))
    RESYNC_DELAY_MS = int(os.environ.get("RESYNC_DELAY_MS", "100"))

    # Race
    COUNTDOWN_FROM = int(os.environ.get("COUNTDOWN_FROM", "3"))
    RACE_DURATION_SEC = int(os.environ.get("RACE_DURATION_SEC", "60"))


@dataclass(frozen=True)
class RoomSettings:
    max_players: int = 32
    host_grace_period_sec: float = 30.0
    resync_delay_sec: float = 0.1
    countdown_from: int = 3
    race_duration_sec: int = 60
    room_code_secret: str = "capytype-shared-secret"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RoomSettings":
        return cls(
            max_players=int(config.get("MAX_PLAYERS", cls.max_players)),
            host_grace_period_sec=float(config.get("HOST_GRACE_PERIOD_SEC", cls.host_grace_period_sec)),
            resync_delay_sec=int(config.get("RESYNC_DELAY_MS", 100)) / 1000,
            countdown_from=int(config.get("COUNTDOWN_FROM", cls.countdown_from)),
            race_duration_sec=int(config.get("RACE_DURATION_SEC", cls.race_duration_sec)),
            room_code_secret=str(config.get("ROOM_CODE_SECRET", cls.room_code_secret)),
        )
