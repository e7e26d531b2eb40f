from __future__ import annotations

import time
from typing import Any, Callable, Protocol

import structlog

logger = structlog.get_logger()


class TimerHandle:
    def __init__(self, name: str = "") -> None:
        self.name = name
        self.cancelled = False
        self.fired = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any) -> TimerHandle: ...


def run_callback(handle: TimerHandle, fn: Callable[..., Any], *args: Any) -> None:
    """Fire a timer unless it was cancelled; a failing callback is logged, not raised."""
    if handle.cancelled:
        return
    handle.fired = True
    try:
        fn(*args)
    except Exception:
        logger.exception("timer_callback_failed", timer=handle.name)


class SocketIOScheduler:
    """Runs each timer as a Socket.IO background task so it cooperates with the async mode."""

    def __init__(self, socketio) -> None:
        self._socketio = socketio

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(getattr(fn, "__name__", ""))

        def _runner() -> None:
            self._socketio.sleep(delay)
            run_callback(handle, fn, *args)

        self._socketio.start_background_task(_runner)
        return handle
