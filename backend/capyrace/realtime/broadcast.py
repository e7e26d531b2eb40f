from __future__ import annotations

from typing import Any, Protocol

from flask_socketio import SocketIO


class Broadcaster(Protocol):
    """Outbound side of the event router.

    A room's channel is named after the room id. Membership follows the
    room's player set, so a room broadcast reaches whoever is in the room
    when it is sent.
    """

    def subscribe(self, connection_id: str, room_id: str) -> None: ...

    def unsubscribe(self, connection_id: str, room_id: str) -> None: ...

    def close_channel(self, room_id: str) -> None: ...

    def to_room(self, room_id: str, event: str, payload: Any = None) -> None: ...

    def to_connection(self, connection_id: str, event: str, payload: Any = None) -> None: ...


class SocketIOBroadcaster:
    def __init__(self, socketio: SocketIO, namespace: str = "/") -> None:
        self._socketio = socketio
        self._namespace = namespace

    def subscribe(self, connection_id: str, room_id: str) -> None:
        self._socketio.server.enter_room(connection_id, room_id, namespace=self._namespace)

    def unsubscribe(self, connection_id: str, room_id: str) -> None:
        self._socketio.server.leave_room(connection_id, room_id, namespace=self._namespace)

    def close_channel(self, room_id: str) -> None:
        self._socketio.close_room(room_id, namespace=self._namespace)

    def to_room(self, room_id: str, event: str, payload: Any = None) -> None:
        self._emit(event, payload, room_id)

    def to_connection(self, connection_id: str, event: str, payload: Any = None) -> None:
        self._emit(event, payload, connection_id)

    def _emit(self, event: str, payload: Any, to: str) -> None:
        if payload is None:
            self._socketio.emit(event, to=to, namespace=self._namespace)
        else:
            self._socketio.emit(event, payload, to=to, namespace=self._namespace)
