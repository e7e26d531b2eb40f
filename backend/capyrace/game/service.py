from __future__ import annotations

from typing import TYPE_CHECKING

from ..config import RoomSettings
from ..security.room_codes import RoomCodec
from .race import RaceLifecycle
from .registry import RoomRegistry
from .sessions import SessionManager

if TYPE_CHECKING:
    from ..realtime.broadcast import Broadcaster
    from .timers import Scheduler


class GameService:
    """Wires the room components together around one registry.

    Each app (and each test) builds its own instance, so rooms never leak
    between them.
    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        scheduler: Scheduler,
        settings: RoomSettings | None = None,
        registry: RoomRegistry | None = None,
    ) -> None:
        self.settings = settings or RoomSettings()
        self.registry = registry or RoomRegistry()
        self.scheduler = scheduler
        self.codec = RoomCodec(self.settings.room_code_secret)
        self.race = RaceLifecycle(self.registry, broadcaster, scheduler, self.settings)
        self.sessions = SessionManager(
            self.registry, broadcaster, scheduler, self.race, self.codec, self.settings
        )
