from __future__ import annotations

import uuid
from threading import RLock

import structlog

from .models import Player, Room

logger = structlog.get_logger()


def normalize_room_id(room_id: str) -> str:
    return (room_id or "").strip().lower()


class RoomRegistry:
    """Owns every live Room. Nothing else creates or deletes rooms.

    ``lock`` serialises every room mutation, from socket handlers and
    timer callbacks alike.
    """

    def __init__(self) -> None:
        self.lock = RLock()
        self._rooms: dict[str, Room] = {}

    def create(self, admin: Player) -> Room:
        with self.lock:
            room_id = str(uuid.uuid4())
            while room_id in self._rooms:
                room_id = str(uuid.uuid4())

            admin.position = 1
            room = Room(id=room_id, admin_id=admin.id, players={admin.id: admin})
            self._rooms[room_id] = room
            logger.info("room_created", room_id=room_id, admin_id=admin.id)
            return room

    def get(self, room_id: str) -> Room | None:
        with self.lock:
            return self._rooms.get(normalize_room_id(room_id))

    def delete(self, room_id: str) -> bool:
        with self.lock:
            room = self._rooms.pop(normalize_room_id(room_id), None)
            if room is None:
                return False
            room.cancel_all_timers()
            logger.info("room_deleted", room_id=room.id)
            return True

    def find_by_connection(self, connection_id: str) -> Room | None:
        with self.lock:
            for room in self._rooms.values():
                if connection_id in room.players:
                    return room
            return None

    def list_rooms(self) -> list[Room]:
        with self.lock:
            return list(self._rooms.values())

    def __contains__(self, room_id: str) -> bool:
        return self.get(room_id) is not None

    def __len__(self) -> int:
        return len(self._rooms)
