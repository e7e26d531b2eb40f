from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from ..config import RoomSettings
from .errors import InvalidState, RoomNotFound, Unauthorized
from .models import Player, Room
from .registry import RoomRegistry
from .texts import pick_text

if TYPE_CHECKING:
    from ..realtime.broadcast import Broadcaster
    from .timers import Scheduler

logger = structlog.get_logger()


def _ms(seconds: float) -> int:
    return int(seconds * 1000)


def rank_players(room: Room) -> list[dict]:
    """Finishers first by time, then everyone else by progress."""
    players = sorted(
        room.connected_players(),
        key=lambda p: (not p.finished, p.finish_time or 0, -p.progress, p.position),
    )
    return [p.to_public() for p in players]


class RaceLifecycle:
    """Drives a room through waiting -> countdown -> playing -> finished."""

    def __init__(
        self,
        registry: RoomRegistry,
        broadcaster: Broadcaster,
        scheduler: Scheduler,
        settings: RoomSettings | None = None,
    ) -> None:
        self._registry = registry
        self._broadcaster = broadcaster
        self._scheduler = scheduler
        self._settings = settings or RoomSettings()

    def start_game(
        self,
        connection_id: str,
        room_id: str,
        text: str | None = None,
        category: str | None = None,
        difficulty: str | None = None,
    ) -> Room:
        with self._registry.lock:
            room = self._registry.get(room_id)
            if room is None:
                raise RoomNotFound()
            if room.admin_id != connection_id:
                raise Unauthorized("Not authorized to start the game")
            # A second start would arm a second countdown on the same room.
            if room.state != "waiting":
                raise InvalidState("A race is already in progress")

            for p in room.players.values():
                p.reset_race_stats()
            room.state = "countdown"
            room.race_text = text or pick_text(category, difficulty)
            room.start_time = None

            logger.info("race_starting", room_id=room.id, players=len(room.players))
            self._broadcaster.to_room(
                room.id,
                "gameStarting",
                {"text": room.race_text, "raceDuration": self._settings.race_duration_sec},
            )
            self._countdown_tick(room.id, self._settings.countdown_from)
            return room

    def _countdown_tick(self, room_id: str, count: int) -> None:
        with self._registry.lock:
            room = self._registry.get(room_id)
            if room is None or room.state != "countdown":
                return

            self._broadcaster.to_room(room.id, "countdown", count)
            if count <= 0:
                room.timers.pop("countdown", None)
                self._begin_race(room)
                return

            room.set_timer(
                "countdown",
                self._scheduler.call_later(1, self._countdown_tick, room.id, count - 1),
            )

    def _begin_race(self, room: Room) -> None:
        now = self._scheduler.now()
        room.state = "playing"
        room.start_time = now
        logger.info("race_started", room_id=room.id)
        self._broadcaster.to_room(
            room.id,
            "gameStarted",
            {
                "startTime": _ms(now),
                "duration": self._settings.race_duration_sec,
                "serverTime": _ms(now),
            },
        )
        room.set_timer("race", self._scheduler.call_later(1, self._race_tick, room.id))

    def _race_tick(self, room_id: str) -> None:
        with self._registry.lock:
            room = self._registry.get(room_id)
            if room is None or room.state != "playing" or room.start_time is None:
                return

            now = self._scheduler.now()
            elapsed = now - room.start_time
            remaining = max(0.0, self._settings.race_duration_sec - elapsed)
            self._broadcaster.to_room(
                room.id,
                "raceTimer",
                {"elapsed": elapsed, "remaining": remaining, "serverTime": _ms(now)},
            )
            if remaining <= 0:
                room.timers.pop("race", None)
                self._finish_race(room, "time_up")
                return

            room.set_timer("race", self._scheduler.call_later(1, self._race_tick, room.id))

    def update_progress(self, connection_id: str, room_id: str, progress: float) -> bool:
        """Record progress. Outside ``playing`` the update is dropped without error."""
        with self._registry.lock:
            room = self._registry.get(room_id)
            if room is None or room.state != "playing":
                return False
            player = room.players.get(connection_id)
            if player is None:
                return False

            player.progress = progress
            self._broadcaster.to_room(
                room.id, "progressUpdate", {"playerId": player.id, "progress": progress}
            )
            if progress >= 100:
                self._complete_player(room, player)
            return True

    def update_stats(self, connection_id: str, wpm: float, errors: int, progress: float) -> bool:
        with self._registry.lock:
            room = self._registry.find_by_connection(connection_id)
            if room is None or room.state != "playing":
                return False
            player = room.players[connection_id]

            player.wpm = wpm
            player.errors = errors
            player.progress = progress
            self._broadcast_stats(room, player)
            if progress >= 100:
                self._complete_player(room, player)
            return True

    def player_finished(
        self,
        connection_id: str,
        wpm: float,
        errors: int,
        progress: float,
        client_time: float | None = None,
    ) -> bool:
        """Final stats from the client. Only a full run counts as a finish.

        The client's own finish time is only logged; the recorded time is
        always measured by the server.
        """
        with self._registry.lock:
            room = self._registry.find_by_connection(connection_id)
            if room is None or room.state != "playing":
                return False
            player = room.players[connection_id]

            player.wpm = wpm
            player.errors = errors
            player.progress = max(player.progress, progress)
            if player.progress < 100:
                self._broadcast_stats(room, player)
                return True

            self._complete_player(room, player)
            logger.info(
                "client_finish_reported",
                room_id=room.id,
                player_id=player.id,
                client_time=client_time,
                server_time=player.finish_time,
            )
            return True

    def _broadcast_stats(self, room: Room, player: Player) -> None:
        self._broadcaster.to_room(
            room.id,
            "playerStatsUpdated",
            {
                "playerId": player.id,
                "wpm": player.wpm,
                "errors": player.errors,
                "progress": player.progress,
            },
        )

    def _complete_player(self, room: Room, player: Player) -> None:
        if player.finished or room.start_time is None:
            return

        player.finish_time = self._scheduler.now() - room.start_time
        logger.info("player_finished", room_id=room.id, player_id=player.id, time=player.finish_time)
        self._broadcaster.to_room(
            room.id,
            "playerFinished",
            {
                "playerId": player.id,
                "nickname": player.nickname,
                "time": player.finish_time,
                "players": room.player_list(),
            },
        )
        self.check_completion(room)

    def check_completion(self, room: Room) -> None:
        """End the race once every connected player has finished."""
        if room.state != "playing":
            return
        connected = room.connected_players()
        if connected and all(p.finished for p in connected):
            self._finish_race(room, "all_finished")

    def _finish_race(self, room: Room, reason: str) -> None:
        room.state = "finished"
        room.cancel_timer("race")
        logger.info("race_finished", room_id=room.id, reason=reason)
        self._broadcaster.to_room(
            room.id,
            "raceFinished",
            {
                "reason": reason,
                "serverTime": _ms(self._scheduler.now()),
                "results": rank_players(room),
            },
        )

    def return_to_lobby(self, connection_id: str, room_id: str) -> Room:
        with self._registry.lock:
            room = self._registry.get(room_id)
            if room is None:
                raise RoomNotFound()
            if room.admin_id != connection_id:
                raise Unauthorized("Only the host can return the room to the lobby")
            if room.state not in ("waiting", "finished"):
                raise InvalidState("The race is still running")

            room.cancel_timer("race")
            room.cancel_timer("countdown")
            room.reset_race()
            self._broadcaster.to_room(
                room.id,
                "gameStateChanged",
                {"gameState": "waiting", "reason": "return_to_lobby"},
            )
            self._broadcaster.to_room(room.id, "playersUpdated", room.player_list())
            return room
