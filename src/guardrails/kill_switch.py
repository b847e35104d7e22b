"""Kill switch for live generation."""

from __future__ import annotations

from typing import Callable, Optional

from src.common.config import generation_enabled


class KillSwitch:
    """Single on/off flag consulted at request time.

    By default the flag is read from ``GENERATION_ENABLED`` on every call so
    operators can disable generation without restarting the process.
    ``set_enabled`` pins the flag in-process and takes precedence.
    """

    def __init__(self, reader: Callable[[], bool] = generation_enabled):
        self._reader = reader
        self._override: Optional[bool] = None

    def is_enabled(self) -> bool:
        if self._override is not None:
            return self._override
        return bool(self._reader())

    def set_enabled(self, enabled: Optional[bool]) -> None:
        """Pin the flag, or pass None to go back to reading the environment."""
        self._override = enabled
