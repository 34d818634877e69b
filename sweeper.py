import asyncio
from typing import Optional

from backend import ChatBackend
from constants import SWEEP_INTERVAL_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class ExpirySweeper:
    """Background task that evicts expired and closed rooms.

    Reads never depend on it: liveness is recomputed on every access. The
    sweep only reclaims membership and message storage.
    """

    def __init__(self, backend: ChatBackend, interval: float = SWEEP_INTERVAL_SECONDS):
        self.backend = backend
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        return self.backend.cleanup_expired_rooms()

    async def _run(self):
        logger.info(f"Expiry sweeper started (interval={self.interval}s)")
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    evicted = self.sweep_once()
                    if evicted:
                        logger.debug(f"Sweeper tick evicted {evicted} rooms")
                except Exception as e:
                    logger.error(f"Error during expiry sweep: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("Expiry sweeper task cancelled")
            raise

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiry sweeper stopped")
