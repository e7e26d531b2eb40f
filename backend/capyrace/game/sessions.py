from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from ..config import RoomSettings
from ..security.room_codes import RoomCodec, lookup_display_name
from .errors import InvalidState, PlayerNotFound, RaceAlreadyStarted, RoomCodeError, RoomFull, RoomNotFound
from .models import Player, Room
from .race import RaceLifecycle
from .registry import RoomRegistry

if TYPE_CHECKING:
    from ..realtime.broadcast import Broadcaster
    from .timers import Scheduler

logger = structlog.get_logger()


class SessionManager:
    """Admission, reconnection and departure of players.

    A player's identity is its nickname: joining with a nickname that is
    already in the room takes over that entry instead of adding a new one.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        broadcaster: Broadcaster,
        scheduler: Scheduler,
        race: RaceLifecycle,
        codec: RoomCodec,
        settings: RoomSettings | None = None,
    ) -> None:
        self._registry = registry
        self._broadcaster = broadcaster
        self._scheduler = scheduler
        self._race = race
        self._codec = codec
        self._settings = settings or RoomSettings()

    def resolve_room(self, room_ref: str) -> Room:
        """Accept either a raw room id or an encrypted room code."""
        room = self._registry.get(room_ref)
        if room is not None:
            return room
        try:
            room_id = self._codec.decrypt_id(room_ref)
        except RoomCodeError:
            raise RoomNotFound() from None
        room = self._registry.get(room_id)
        if room is None:
            raise RoomNotFound()
        return room

    def create_room(self, connection_id: str, nickname: str, avatar: str, color: str) -> Room:
        with self._registry.lock:
            # A connection belongs to one room at a time.
            if self._registry.find_by_connection(connection_id) is not None:
                self.leave(connection_id, explicit=True)

            player = Player(id=connection_id, nickname=nickname, avatar=avatar, color=color)
            room = self._registry.create(player)
            self._broadcaster.subscribe(connection_id, room.id)

            self._broadcaster.to_connection(connection_id, "roomCreated", room.id)
            self._send_joined(room, player)
            self._broadcaster.to_room(room.id, "playerJoined", room.player_list())
            return room

    def join_room(
        self, connection_id: str, room_ref: str, nickname: str, avatar: str, color: str
    ) -> Room:
        with self._registry.lock:
            room = self.resolve_room(room_ref)
            existing = room.find_by_nickname(nickname)

            if connection_id in room.players and (existing is None or existing.id != connection_id):
                raise InvalidState("You are already in this room")

            if existing is None:
                if room.state != "waiting":
                    raise RaceAlreadyStarted()
                if len(room.players) >= self._settings.max_players:
                    raise RoomFull(f"Room is full ({self._settings.max_players} players max)")

            current = self._registry.find_by_connection(connection_id)
            if current is not None and current is not room:
                self.leave(connection_id, explicit=True)

            if existing is not None:
                player = self._reconnect(room, existing, connection_id, avatar, color)
            else:
                player = Player(
                    id=connection_id,
                    nickname=nickname,
                    avatar=avatar,
                    color=color,
                    position=len(room.players) + 1,
                )
                room.players[connection_id] = player
                logger.info("player_joined", room_id=room.id, player_id=connection_id)

            self._broadcaster.subscribe(connection_id, room.id)
            self._send_joined(room, player)
            self._broadcaster.to_room(room.id, "playerJoined", room.player_list())

            if existing is not None:
                # Clients that rendered a stale list in between catch up here.
                room.set_timer(
                    "resync",
                    self._scheduler.call_later(self._settings.resync_delay_sec, self._resync, room.id),
                )
            return room

    def _reconnect(
        self, room: Room, old: Player, connection_id: str, avatar: str, color: str
    ) -> Player:
        racing = room.state in ("countdown", "playing")
        player = Player(
            id=connection_id,
            nickname=old.nickname,
            avatar=old.avatar if racing else avatar,
            color=color,
            position=old.position,
            progress=old.progress,
            wpm=old.wpm,
            errors=old.errors,
            finish_time=old.finish_time,
        )
        # Swap in place: the room never holds both entries, and join order is kept.
        room.players = {
            (connection_id if pid == old.id else pid): (player if pid == old.id else p)
            for pid, p in room.players.items()
        }
        if old.id != connection_id:
            self._broadcaster.unsubscribe(old.id, room.id)

        if room.admin_id == old.id:
            room.admin_id = connection_id
            room.cancel_timer("host_grace")

        logger.info(
            "player_reconnected",
            room_id=room.id,
            old_id=old.id,
            player_id=connection_id,
            was_disconnected=old.disconnected,
        )
        return player

    def _resync(self, room_id: str) -> None:
        with self._registry.lock:
            room = self._registry.get(room_id)
            if room is None:
                return
            room.timers.pop("resync", None)
            self._broadcaster.to_room(room.id, "playerJoined", room.player_list())

    def _send_joined(self, room: Room, player: Player) -> None:
        self._broadcaster.to_connection(
            player.id,
            "roomJoined",
            {
                "roomId": room.id,
                "isAdmin": room.admin_id == player.id,
                "nickname": player.nickname,
                "hostId": room.admin_id,
                "roomCode": self._codec.encrypt_id(room.id),
                "roomName": lookup_display_name(room.id),
            },
        )

    def leave(self, connection_id: str, explicit: bool) -> None:
        """Handle a ``leaveRoom`` (explicit) or a transport drop (implicit)."""
        with self._registry.lock:
            room = self._registry.find_by_connection(connection_id)
            if room is None:
                return

            player = room.players[connection_id]
            others = [p for p in room.connected_players() if p.id != connection_id]

            if room.admin_id == connection_id and others:
                if explicit:
                    del room.players[connection_id]
                    self._broadcaster.unsubscribe(connection_id, room.id)
                    logger.info("host_left", room_id=room.id, player_id=connection_id)
                    self.close_room(room, "host_left", "The host has left the room")
                else:
                    self._start_host_grace(room, player)
                return

            del room.players[connection_id]
            self._broadcaster.unsubscribe(connection_id, room.id)
            logger.info("player_left", room_id=room.id, player_id=connection_id, explicit=explicit)

            if not room.connected_players():
                self._broadcaster.close_channel(room.id)
                self._registry.delete(room.id)
                return

            self._broadcaster.to_room(room.id, "playerLeft", room.player_list())
            self._race.check_completion(room)

    def _start_host_grace(self, room: Room, admin: Player) -> None:
        admin.disconnected = True
        admin.disconnected_at = self._scheduler.now()
        self._broadcaster.unsubscribe(admin.id, room.id)

        grace = self._settings.host_grace_period_sec
        room.set_timer("host_grace", self._scheduler.call_later(grace, self._host_grace_expired, room.id))
        logger.info("host_grace_started", room_id=room.id, player_id=admin.id, seconds=grace)

        self._broadcaster.to_room(room.id, "playerLeft", room.player_list())
        self._race.check_completion(room)

    def _host_grace_expired(self, room_id: str) -> None:
        with self._registry.lock:
            room = self._registry.get(room_id)
            if room is None:
                return
            room.timers.pop("host_grace", None)

            admin = room.players.get(room.admin_id)
            if admin is not None and not admin.disconnected:
                return

            logger.info("host_grace_expired", room_id=room.id)
            self.close_room(room, "host_left", "The host has left and did not come back")

    def close_room(self, room: Room, reason: str, message: str) -> None:
        """Tell everyone still in the room, then drop it."""
        with self._registry.lock:
            self._broadcaster.to_room(room.id, "roomClosed", {"reason": reason, "message": message})
            for pid in list(room.players):
                self._broadcaster.unsubscribe(pid, room.id)
            self._broadcaster.close_channel(room.id)
            self._registry.delete(room.id)
            logger.info("room_closed", room_id=room.id, reason=reason)

    def change_color(
        self, connection_id: str, target_player_id: str, color: str, avatar: str | None = None
    ) -> Player:
        """Any room member may restyle any player; there is no ownership check."""
        with self._registry.lock:
            room = self._registry.find_by_connection(target_player_id)
            if room is None:
                raise PlayerNotFound()

            player = room.players[target_player_id]
            player.color = color
            if avatar and room.state not in ("countdown", "playing"):
                player.avatar = avatar

            logger.info(
                "player_color_changed",
                room_id=room.id,
                player_id=player.id,
                requested_by=connection_id,
            )
            self._broadcaster.to_room(
                room.id,
                "playerColorChanged",
                {"playerId": player.id, "color": player.color, "avatar": player.avatar},
            )
            return player
