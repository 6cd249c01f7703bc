"""
Shared Application State

`AppState` is built once by the orchestrator and handed by reference to
every request handler. It is frozen, so concurrent readers need no locking.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from .config import Config


@dataclass(frozen=True)
class AppState:
    config: Config
    start_time: float = field(default_factory=time.monotonic)

    @property
    def uptime_seconds(self) -> int:
        """Whole seconds elapsed since `start_time`."""
        return int(time.monotonic() - self.start_time)
