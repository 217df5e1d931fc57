"""Per-job timer bookkeeping."""

import asyncio
import logging
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class TimeoutRegistry[K: Hashable]:
    """Owns at most one pending timer per key.

    Keys are job handles, which are never reused, so a cleared or fired
    timer can never act on a later job.
    """

    _timers: dict[K, asyncio.TimerHandle] = field(default_factory=dict)

    def start(self, key: K, delay: float, callback: Callable[[K], None]) -> None:
        """Arm a timer that calls ``callback(key)`` after ``delay`` seconds.

        Raises:
            ValueError: If a timer is already armed for ``key``

        """
        if key in self._timers:
            raise ValueError(f"Timer already armed for {key!r}")

        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(delay, self._fire, key, callback)

    def clear(self, key: K) -> bool:
        """Cancel the timer for ``key``; returns whether one was pending."""
        handle = self._timers.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def clear_all(self) -> None:
        for key in list(self._timers):
            self.clear(key)

    def is_armed(self, key: K) -> bool:
        return key in self._timers

    def __len__(self) -> int:
        return len(self._timers)

    def _fire(self, key: K, callback: Callable[[K], None]) -> None:
        if self._timers.pop(key, None) is None:
            return
        log.debug("Timer fired for %r", key)
        callback(key)
