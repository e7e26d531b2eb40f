from __future__ import annotations

from typing import Any, Callable

import structlog
from flask import request
from flask_socketio import SocketIO, emit
from pydantic import BaseModel, ValidationError

from ..game.errors import RoomError
from ..game.service import GameService
from .schemas import (
    ChangePlayerColorMessage,
    CreateRoomMessage,
    JoinRoomMessage,
    PlayerFinishedMessage,
    ReturnToLobbyMessage,
    StartGameMessage,
    UpdatePlayerStatsMessage,
    UpdateProgressMessage,
    describe_error,
)

logger = structlog.get_logger()


def register_socketio_handlers(socketio: SocketIO, game: GameService) -> None:
    def _handle(schema: type[BaseModel], data: Any, action: Callable[[Any], Any]) -> dict:
        """Validate, dispatch, and turn expected failures into a reply to the sender only."""
        try:
            message = schema.model_validate(data if isinstance(data, dict) else {})
        except ValidationError as exc:
            logger.info("invalid_payload", sid=request.sid, schema=schema.__name__)
            emit("validationError", {"message": describe_error(exc)})
            return {"ok": False, "error": "invalid_payload"}

        try:
            action(message)
        except RoomError as exc:
            logger.info("room_error", sid=request.sid, code=exc.code)
            emit("roomError", exc.to_payload())
            return {"ok": False, "error": exc.code}

        return {"ok": True}

    @socketio.on("connect")
    def on_connect(auth=None):
        logger.debug("client_connected", sid=request.sid)

    @socketio.on("createRoom")
    def create_room(data=None):
        return _handle(
            CreateRoomMessage,
            data,
            lambda m: game.sessions.create_room(request.sid, m.nickname, m.avatar, m.color),
        )

    @socketio.on("joinRoom")
    def join_room(data=None):
        return _handle(
            JoinRoomMessage,
            data,
            lambda m: game.sessions.join_room(request.sid, m.room_id, m.nickname, m.avatar, m.color),
        )

    @socketio.on("startGame")
    def start_game(data=None):
        return _handle(
            StartGameMessage,
            data,
            lambda m: game.race.start_game(
                request.sid, m.room_id, text=m.text, category=m.category, difficulty=m.difficulty
            ),
        )

    @socketio.on("updateProgress")
    def update_progress(data=None):
        return _handle(
            UpdateProgressMessage,
            data,
            lambda m: game.race.update_progress(request.sid, m.room_id, m.progress),
        )

    @socketio.on("updatePlayerStats")
    def update_player_stats(data=None):
        return _handle(
            UpdatePlayerStatsMessage,
            data,
            lambda m: game.race.update_stats(request.sid, m.wpm, m.errors, m.progress),
        )

    @socketio.on("playerFinished")
    def player_finished(data=None):
        return _handle(
            PlayerFinishedMessage,
            data,
            lambda m: game.race.player_finished(request.sid, m.wpm, m.errors, m.progress, m.time),
        )

    @socketio.on("changePlayerColor")
    def change_player_color(data=None):
        return _handle(
            ChangePlayerColorMessage,
            data,
            lambda m: game.sessions.change_color(request.sid, m.player_id, m.color, m.avatar),
        )

    @socketio.on("returnToLobby")
    def return_to_lobby(data=None):
        return _handle(
            ReturnToLobbyMessage,
            data,
            lambda m: game.race.return_to_lobby(request.sid, m.room_id),
        )

    @socketio.on("leaveRoom")
    def leave_room(data=None):
        game.sessions.leave(request.sid, explicit=True)
        return {"ok": True}

    @socketio.on("timePing")
    def time_ping(client_time=None):
        emit("timePong", int(game.scheduler.now() * 1000))

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        logger.debug("client_disconnected", sid=request.sid, reason=str(reason) if reason else None)
        game.sessions.leave(request.sid, explicit=False)

    @socketio.on_error_default
    def on_error(exc):
        event = getattr(request, "event", None) or {}
        logger.error("socket_handler_failed", sid=request.sid, socket_event=event.get("message"), exc_info=exc)
        emit("serverError", {"message": "Something went wrong on the server"})
