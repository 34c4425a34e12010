"""
Job Collector

Deletes finished integration jobs once they are older than
``integrationJobTTL`` hours, every ``collectPeriod`` hours.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from ..configs import controller
from ..signals import CoalescingSignal

logger = logging.getLogger(__name__)


class FinishedJobStore(Protocol):
    async def delete_finished_before(self, cutoff: datetime) -> int:
        ...


class JobCollector:
    def __init__(
        self,
        store: FinishedJobStore,
        clock: Callable[[], datetime] = datetime.utcnow,
        hour_seconds: float = 3600.0,
    ):
        self.store = store
        self.clock = clock
        self.hour_seconds = hour_seconds
        # Re-read the period as soon as the controller config changes
        self.config_changed = CoalescingSignal("collector")
        controller.register_controller_config_update_signal(self.config_changed)
        self._task: Optional[asyncio.Task] = None

    async def collect(self) -> int:
        """Delete expired jobs once. Returns the number of deleted jobs."""
        ttl = timedelta(hours=controller.INTEGRATION_JOB_TTL.get())
        cutoff = self.clock() - ttl
        deleted = await self.store.delete_finished_before(cutoff)
        if deleted:
            logger.info(f"Collected {deleted} jobs finished before {cutoff.isoformat()}")
        return deleted

    async def run(self) -> None:
        while True:
            try:
                await self.collect()
            except Exception as e:
                logger.error(f"Job collection failed: {e}")

            period = max(controller.COLLECT_PERIOD.get(), 1) * self.hour_seconds
            try:
                await asyncio.wait_for(self.config_changed.wait(), timeout=period)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
