from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from .timers import TimerHandle


RoomState = Literal["waiting", "countdown", "playing", "finished"]


@dataclass
class Player:
    id: str
    nickname: str
    avatar: str = ""
    color: str = ""
    position: int = 1
    progress: float = 0
    wpm: float = 0
    errors: int = 0
    finish_time: float | None = None
    disconnected: bool = False
    disconnected_at: float | None = None

    @property
    def finished(self) -> bool:
        return self.finish_time is not None

    def reset_race_stats(self) -> None:
        self.progress = 0
        self.wpm = 0
        self.errors = 0
        self.finish_time = None

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "nickname": self.nickname,
            "avatar": self.avatar,
            "color": self.color,
            "position": self.position,
            "progress": self.progress,
            "wpm": self.wpm,
            "errors": self.errors,
            "time": self.finish_time,
            "finished": self.finished,
        }


@dataclass
class Room:
    id: str
    admin_id: str
    state: RoomState = "waiting"
    race_text: str = ""
    start_time: float | None = None
    # Insertion order is join order.
    players: dict[str, Player] = field(default_factory=dict)
    timers: dict[str, "TimerHandle"] = field(default_factory=dict)

    def connected_players(self) -> list[Player]:
        return [p for p in self.players.values() if not p.disconnected]

    def player_list(self) -> list[dict]:
        return [p.to_public() for p in self.connected_players()]

    def find_by_nickname(self, nickname: str) -> Player | None:
        for p in self.players.values():
            if p.nickname == nickname:
                return p
        return None

    def set_timer(self, name: str, handle: "TimerHandle") -> None:
        self.cancel_timer(name)
        self.timers[name] = handle

    def cancel_timer(self, name: str) -> None:
        handle = self.timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_all_timers(self) -> None:
        for name in list(self.timers):
            self.cancel_timer(name)

    def reset_race(self) -> None:
        self.state = "waiting"
        self.race_text = ""
        self.start_time = None
        for p in self.players.values():
            p.reset_race_stats()
