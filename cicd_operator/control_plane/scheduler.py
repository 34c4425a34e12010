"""
Job Scheduler

Promotes Pending integration jobs to Running, oldest first, while fewer than
``maxPipelineRun`` jobs are running.

Scheduling is triggered through ``schedule()``. Triggers coalesce: the
scheduler lists jobs by itself, so any number of calls made before the next
pass starts result in a single pass. Passes never overlap and are separated
by a minimum gap.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from ..configs import controller
from ..signals import CoalescingSignal
from .executor_adapter import StartRequester
from .job_pool import JobPool
from .job_store import JobStore
from .models import IntegrationJob, IntegrationJobState

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(
        self,
        store: JobStore,
        executor: StartRequester,
        min_gap_seconds: float = 3.0,
        max_running: Callable[[], int] = controller.MAX_PIPELINE_RUN.get,
    ):
        """
        Initialize scheduler.

        Args:
            store: Store the authoritative job list is read from
            executor: Receives start requests for promoted jobs
            min_gap_seconds: Minimum time between two dispatch passes
            max_running: Returns the current concurrency cap
        """
        self.store = store
        self.executor = executor
        self.min_gap_seconds = min_gap_seconds
        self.max_running = max_running

        # Capacity 1: a pass that is already queued absorbs further triggers
        self.caller = CoalescingSignal("scheduler")
        self.pool = JobPool(self.caller)

        self.passes = 0
        self._task: Optional[asyncio.Task] = None

    def schedule(self) -> bool:
        """
        Request a dispatch pass. Never blocks.

        Returns:
            False if a pass was already pending (the request coalesced into it)
        """
        queued = self.caller.notify()
        logger.debug(f"Schedule requested (queued={queued})")
        return queued

    async def run(self) -> None:
        """Dispatch loop: one pass per trigger, then cool down."""
        logger.info("Scheduler loop started")
        while True:
            await self.caller.wait()
            try:
                await self.dispatch()
            except Exception as e:
                logger.error(f"Dispatch pass failed: {e}", exc_info=True)
            await asyncio.sleep(self.min_gap_seconds)

    async def dispatch(self) -> int:
        """
        Run one dispatch pass.

        Lists the jobs, re-syncs the pools and promotes pending jobs while
        there is room.

        Returns:
            Number of promoted jobs
        """
        self.passes += 1
        try:
            jobs = await self.store.list_jobs()
        except Exception as e:
            logger.error(f"Error listing jobs, abandoning pass: {e}")
            return 0

        self.pool.sync_jobs(jobs)
        jobs_by_key = {f"{job.namespace}/{job.name}": job for job in jobs}

        promoted = 0
        limit = self.max_running()
        while len(self.pool.running) < limit and len(self.pool.pending) > 0:
            node = self.pool.pending.head()
            if not await self._promote(jobs_by_key[node.key]):
                break
            promoted += 1

        logger.info(
            f"Dispatch pass {self.passes}: promoted={promoted}, "
            f"pending={len(self.pool.pending)}, running={len(self.pool.running)}, limit={limit}"
        )
        return promoted

    async def _promote(self, job: IntegrationJob) -> bool:
        """
        Claim ``job`` as Running, then request its execution.

        The claim only succeeds while the job is still Pending, so a job
        canceled or deleted since the listing is never started. If the start
        request fails the claim is released. Either way a failed promotion
        leaves the job pending for a later pass.
        """
        try:
            claimed = await self.store.update_state(
                job.namespace,
                job.name,
                IntegrationJobState.RUNNING,
                expected=IntegrationJobState.PENDING,
                message="Job is running",
            )
        except Exception as e:
            logger.warning(f"Failed to claim job {job.key}: {e}")
            return False

        try:
            await self.executor.start(claimed)
        except Exception as e:
            logger.warning(f"Failed to start job {job.key}: {e}")
            await self._release(claimed)
            return False

        self.pool.sync_job(claimed)
        logger.info(f"Promoted job {claimed.key} (attempt {claimed.attempts})")
        return True

    async def _release(self, job: IntegrationJob) -> None:
        """Return a claimed job whose start request failed to Pending."""
        try:
            await self.store.update_state(
                job.namespace,
                job.name,
                IntegrationJobState.PENDING,
                expected=IntegrationJobState.RUNNING,
                message="Start request failed",
            )
        except Exception as e:
            # The next listing shows it Running without an executor behind it
            logger.error(f"Failed to release job {job.key}: {e}")

    def stats(self) -> Dict[str, Any]:
        """Current pool contents and scheduler counters."""
        return {
            "pending": len(self.pool.pending),
            "running": len(self.pool.running),
            "max_pipeline_run": self.max_running(),
            "pending_jobs": self.pool.pending.keys(),
            "running_jobs": self.pool.running.keys(),
            "passes": self.passes,
            "trigger_pending": self.caller.pending,
        }

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("Scheduler already started")
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
