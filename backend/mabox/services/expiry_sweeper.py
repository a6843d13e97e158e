"""Background expiry sweeper.

Runs as an asyncio task within the FastAPI process, started and stopped by
the app lifespan. Each tick evicts every record that has expired; lazy
eviction in EphemeralStore.get() covers files requested between ticks.
"""
import asyncio
import logging
import traceback
from typing import Optional

from mabox.services.file_storage import EphemeralStore, SweepReport

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        store: EphemeralStore,
        interval_seconds: float = 10.0,
        *,
        reconcile_orphans: bool = False,
        orphan_grace_seconds: float = 300.0,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.store = store
        self.interval_seconds = interval_seconds
        self.reconcile_orphans = reconcile_orphans
        self.orphan_grace_seconds = orphan_grace_seconds
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> SweepReport:
        """One sweep tick."""
        report = await self.store.sweep()
        if self.reconcile_orphans:
            report.orphans = await self.store.reconcile_orphans(self.orphan_grace_seconds)
        self.ticks += 1
        return report

    async def _loop(self):
        logger.info(f"Expiry sweeper started (every {self.interval_seconds}s)")
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Sweep tick failed: {e}")
                logger.error(traceback.format_exc())

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Expiry sweeper stopped")
