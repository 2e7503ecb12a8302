import asyncio
import logging
from typing import Callable, Optional

log = logging.getLogger("state.timers")


class SingleTimer:
    """
    At most one pending callback at a time.

    start() always cancels whatever was pending first. Once cancel() or
    start() has returned, the replaced callback will not run, even if its
    deadline had already passed and it was queued on the loop.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._generation = 0
        self.label: Optional[str] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self, delay_ms: float, callback: Callable[[], None], label: str = "") -> None:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._generation += 1
        generation = self._generation
        self.label = label or getattr(callback, "__name__", "timer")
        self._handle = loop.call_later(delay_ms / 1000.0, self._fire, generation, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            log.debug("timer '%s' cleared", self.label)
        self._generation += 1
        self.label = None

    def _fire(self, generation: int, callback: Callable[[], None]) -> None:
        if generation != self._generation:
            return
        self._handle = None
        self.label = None
        callback()
