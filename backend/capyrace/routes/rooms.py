from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..game.errors import RoomCodeError
from ..security.room_codes import lookup_display_name

bp = Blueprint("rooms", __name__)


@bp.get("/rooms/lookup")
def lookup_room():
    game = current_app.extensions["capyrace"]
    code = request.args.get("code", "")

    try:
        room_id = game.codec.decrypt_id(code)
    except RoomCodeError:
        return jsonify({"error": "room_not_found"}), 404

    room = game.registry.get(room_id)
    if not room:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify({"name": lookup_display_name(room.id), "id": room.id})
