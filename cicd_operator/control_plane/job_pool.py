"""
Job Pool

Tracks which integration jobs are waiting and which are running.
``sync_job`` is the only way pool membership changes; a job is never held by
both pools at the same time.
"""
import logging
from typing import Iterable, Optional

from .models import IntegrationJob, IntegrationJobState
from .pool import Comparator, JobNode, OrderedPool, created_before
from ..signals import CoalescingSignal

logger = logging.getLogger(__name__)


class JobPool:
    """
    Pending and running pools of integration jobs.

    Every structural change notifies ``trigger`` (typically the scheduler's
    caller signal) so that a new dispatch pass gets queued.
    """

    def __init__(self, trigger: Optional[CoalescingSignal] = None, less: Comparator = created_before):
        self.trigger = trigger
        self.pending = OrderedPool(less)
        self.running = OrderedPool(less)

    def sync_job(self, job: IntegrationJob) -> bool:
        """
        Move the job's node to the pool matching its state.

        Pending jobs live in ``pending``, running jobs in ``running``, and
        jobs in any other state are dropped from both.

        Returns:
            True if either pool changed
        """
        node = JobNode.from_job(job)
        state = job.state

        if state == IntegrationJobState.PENDING:
            changed = self.running.remove(node.key)
            changed = self.pending.sync(node) or changed
        elif state == IntegrationJobState.RUNNING:
            changed = self.pending.remove(node.key)
            changed = self.running.sync(node) or changed
        else:
            changed = self.pending.remove(node.key)
            changed = self.running.remove(node.key) or changed

        if changed:
            logger.debug(f"Job {node.key} synced as {state}")
            self._notify()
        return changed

    def sync_jobs(self, jobs: Iterable[IntegrationJob]) -> bool:
        """
        Sync a full listing of jobs.

        Identities missing from the listing were deleted from the store and
        are dropped from both pools.
        """
        changed = False
        seen = set()
        for job in jobs:
            seen.add(f"{job.namespace}/{job.name}")
            changed = self.sync_job(job) or changed

        stale = [key for key in self.pending.keys() + self.running.keys() if key not in seen]
        for key in stale:
            self.pending.remove(key)
            self.running.remove(key)
            logger.debug(f"Job {key} no longer exists, dropped from pool")
        if stale:
            self._notify()
            changed = True
        return changed

    def _notify(self) -> None:
        if self.trigger is not None:
            self.trigger.notify()

    def __len__(self) -> int:
        return len(self.pending) + len(self.running)
