from __future__ import annotations

import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify

bp = Blueprint("health", __name__)

_started_at = time.monotonic()


@bp.get("/health")
def health():
    return jsonify(
        {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - _started_at, 3),
        }
    )
