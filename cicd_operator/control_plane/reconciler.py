"""
Job Reconciler

Listens to integration job events and asks the scheduler for a pass on each
of them. The scheduler re-reads the job list itself, so the event payload is
only logged.
"""
import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as redis

from .job_store import JOB_EVENTS_CHANNEL
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class JobReconciler:
    def __init__(
        self,
        redis_client: redis.Redis,
        scheduler: Scheduler,
        events_channel: str = JOB_EVENTS_CHANNEL,
        retry_seconds: float = 1.0,
    ):
        self.redis = redis_client
        self.scheduler = scheduler
        self.events_channel = events_channel
        self.retry_seconds = retry_seconds
        self._task: Optional[asyncio.Task] = None

    def reconcile(self, payload: str) -> None:
        """Handle one job event."""
        try:
            event = json.loads(payload)
        except (TypeError, ValueError):
            event = {"raw": payload}
        logger.debug(f"Job event: {event}")
        self.scheduler.schedule()

    async def watch(self) -> None:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(self.events_channel)
        try:
            # Events published while we were not subscribed are lost; resync once
            self.scheduler.schedule()
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                self.reconcile(message["data"])
        finally:
            await pubsub.unsubscribe(self.events_channel)
            await pubsub.aclose()

    async def run(self) -> None:
        while True:
            try:
                await self.watch()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Job event watch failed: {e}")
            await asyncio.sleep(self.retry_seconds)

    def start(self) -> None:
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
