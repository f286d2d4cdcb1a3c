"""Debounced auto-save.

Bursts of edits to the same draft collapse into one write: each new call
for a key restarts that key's timer.  A write that has already started is
never cancelled.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from storyloom.config import settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Per-key trailing-edge debouncer for async writes."""

    def __init__(self, delay: float | None = None) -> None:
        self._delay = settings.autosave_delay_ms / 1000 if delay is None else delay
        self._timers: dict[str, asyncio.Task] = {}
        self._pending: dict[str, Callable[[], Awaitable[None]]] = {}
        self._running: set[asyncio.Task] = set()

    @property
    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def schedule(self, key: str, write: Callable[[], Awaitable[None]]) -> None:
        """Run *write* after the delay unless another call for *key* supersedes it."""
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._pending[key] = write
        self._timers[key] = asyncio.create_task(self._fire_later(key))

    async def _fire_later(self, key: str) -> None:
        await asyncio.sleep(self._delay)
        self._timers.pop(key, None)
        write = self._pending.pop(key, None)
        if write is None:
            return
        task = asyncio.current_task()
        if task is not None:
            self._running.add(task)
        try:
            await self._run(key, write)
        finally:
            if task is not None:
                self._running.discard(task)

    @staticmethod
    async def _run(key: str, write: Callable[[], Awaitable[None]]) -> None:
        try:
            await write()
            logger.debug("Auto-saved %s", key)
        except Exception:
            logger.exception("Auto-save failed for %s", key)

    async def flush(self) -> None:
        """Run every pending write now and wait for in-flight writes."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        pending, self._pending = self._pending, {}
        for key, write in pending.items():
            await self._run(key, write)
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    async def cancel_all(self) -> None:
        """Drop pending writes. In-flight writes still finish."""
        timers = list(self._timers.values())
        self._timers.clear()
        self._pending.clear()
        for timer in timers:
            timer.cancel()
        for timer in timers:
            with contextlib.suppress(asyncio.CancelledError):
                await timer
