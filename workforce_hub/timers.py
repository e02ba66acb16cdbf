from __future__ import annotations

import logging
from typing import Callable, Protocol

from discord.ext import tasks

TICK_SECONDS = 1.0

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    name: str

    def start(self) -> None: ...

    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


TimerFactory = Callable[[Callable[[], None], str], TimerHandle]


class LoopTimer:
    """A one-second ticker backed by a discord.py task loop.

    The first tick fires as soon as the event loop runs the task. Once
    cancel() returns, the callback is never invoked again, even if the loop
    was already woken for its next iteration.
    """

    def __init__(self, callback: Callable[[], None], name: str, *, seconds: float = TICK_SECONDS) -> None:
        self.name = name
        self._callback = callback
        self._cancelled = False
        self._loop = tasks.loop(seconds=seconds)(self._tick)

    async def _tick(self) -> None:
        if self._cancelled:
            return
        self._callback()

    def start(self) -> None:
        if self._cancelled:
            raise RuntimeError(f"Timer {self.name} was cancelled and cannot be restarted")
        self._loop.start()
        logger.debug("Timer %s started", self.name)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._loop.is_running():
            self._loop.cancel()
        logger.debug("Timer %s cancelled", self.name)

    @property
    def active(self) -> bool:
        return not self._cancelled and self._loop.is_running()


def loop_timer(callback: Callable[[], None], name: str) -> LoopTimer:
    return LoopTimer(callback, name)
