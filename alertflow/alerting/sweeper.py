"""Background sweeps that expire stale silence and throttle entries."""

from __future__ import annotations

import asyncio
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)

# A sweep returns how many entries it removed.
SweepFn = Callable[[], int]


class PeriodicSweeper:
    """Runs *fn* every *interval_secs* on an asyncio task.

    Usage::

        sweeper = PeriodicSweeper("silence", registry.sweep, interval_secs=60)
        await sweeper.start()
        # ...
        await sweeper.stop()
    """

    def __init__(self, name: str, fn: SweepFn, interval_secs: float) -> None:
        self._name = name
        self._fn = fn
        self._interval = interval_secs
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def run_once(self) -> int:
        """Run the sweep immediately (useful for testing)."""
        return self._fn()

    # ── Internal loop ───────────────────────────────────────────

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                self.run_once()
            except Exception:
                logger.exception("sweep_error", sweeper=self._name)
