"""Background task that enforces session deadlines and retention.

Every interval, claims running sessions whose max duration has elapsed and
purges terminal sessions past the retention window. Each claimed session is
then finished in its own worker thread, so a stop that blocks on the engine
never delays other sessions or the next sweep.
"""

import asyncio
import logging

from profiling_sessions.services.controller import SessionController

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Periodic deadline and retention sweep."""

    def __init__(
        self,
        controller: SessionController,
        interval_seconds: float,
        stop_timeout_seconds: float = 30,
    ):
        self._controller = controller
        self._interval_seconds = interval_seconds
        self._stop_timeout_seconds = stop_timeout_seconds
        self._task: asyncio.Task | None = None
        self._finishing: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending_stops(self) -> int:
        return len(self._finishing)

    def start(self) -> None:
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Session sweeper started (interval=%ss)", self._interval_seconds)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if not await self.wait_for_stops(self._stop_timeout_seconds):
            logger.warning(
                "%s session stops still running at sweeper shutdown",
                len(self._finishing),
            )

    async def sweep_once(self) -> tuple[int, int]:
        """Run one sweep, wait for its stops, and return (stopped, purged)."""
        counts = await self._sweep()
        await self.wait_for_stops()
        return counts

    async def wait_for_stops(self, timeout: float | None = None) -> bool:
        """Wait for dispatched stops; return False if some are still running."""
        if not self._finishing:
            return True
        _, pending = await asyncio.wait(set(self._finishing), timeout=timeout)
        return not pending

    async def _sweep(self) -> tuple[int, int]:
        claimed = await asyncio.to_thread(self._controller.claim_expired)
        for session in claimed:
            task = asyncio.create_task(
                asyncio.to_thread(self._controller.finish_stop_quietly, session)
            )
            self._finishing.add(task)
            task.add_done_callback(self._stop_done)
        purged = await asyncio.to_thread(self._controller.purge)
        if claimed:
            logger.info("Stopping %s sessions past their deadline", len(claimed))
        return len(claimed), purged

    def _stop_done(self, task: asyncio.Task) -> None:
        self._finishing.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Session stop failed", exc_info=task.exception())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await self._sweep()
            except Exception:
                logger.exception("Session sweep failed")
