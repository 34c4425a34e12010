"""
Job Store

Reads and writes IntegrationJob rows and announces every write on a Redis
channel, so that the job reconciler can trigger the scheduler.
PostgreSQL is the source of truth; Redis only carries the notifications.
"""
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import redis.asyncio as redis
from sqlmodel import select

from ..errors import JobNotFoundError, StateConflictError
from .models import IntegrationJob, IntegrationJobState, stamp_transition

logger = logging.getLogger(__name__)

JOB_EVENTS_CHANNEL = "integrationjobs:events"


class JobStore(Protocol):
    """Store operations the scheduler depends on."""

    async def list_jobs(self) -> List[IntegrationJob]:
        ...

    async def update_state(
        self,
        namespace: str,
        name: str,
        state: IntegrationJobState,
        expected: Optional[IntegrationJobState] = None,
        message: Optional[str] = None,
        status: Optional[Dict[str, Any]] = None,
    ) -> IntegrationJob:
        ...


class SQLJobStore:
    """
    JobStore on the operator database.

    Errors talking to the database propagate to the caller; failures to
    publish a job event are only logged.
    """

    def __init__(self, db, redis_client: Optional[redis.Redis] = None, events_channel: str = JOB_EVENTS_CHANNEL):
        """
        Initialize job store.

        Args:
            db: Database instance (not just engine)
            redis_client: Redis async client for job events, None to disable them
            events_channel: Pub/sub channel job events are published on
        """
        self.db = db
        self.redis = redis_client
        self.events_channel = events_channel

    async def list_jobs(self) -> List[IntegrationJob]:
        """List all integration jobs, oldest first."""
        async with self.db.session() as session:
            statement = select(IntegrationJob).order_by(
                IntegrationJob.created_at, IntegrationJob.namespace, IntegrationJob.name
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def get_job(self, namespace: str, name: str) -> Optional[IntegrationJob]:
        async with self.db.session() as session:
            return await self._find(session, namespace, name)

    async def create_job(
        self,
        namespace: str,
        name: str,
        status: Optional[Dict[str, Any]] = None,
    ) -> IntegrationJob:
        """Create a new Pending job."""
        job = IntegrationJob(
            id=str(uuid.uuid4()),
            namespace=namespace,
            name=name,
            state=IntegrationJobState.PENDING,
            status=status or {},
        )

        async with self.db.session() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)

        logger.info(f"Created job {job.key} ({job.id})")
        await self._publish("created", job)
        return job

    async def update_state(
        self,
        namespace: str,
        name: str,
        state: IntegrationJobState,
        expected: Optional[IntegrationJobState] = None,
        message: Optional[str] = None,
        status: Optional[Dict[str, Any]] = None,
    ) -> IntegrationJob:
        """
        Update a job's state.

        Args:
            namespace: Job namespace
            name: Job name
            state: New state
            expected: If given, the update only applies when the job is
                currently in this state
            message: Optional reason for the change
            status: Optional status payload replacing the current one

        Returns:
            The updated job

        Raises:
            JobNotFoundError: If the job does not exist
            StateConflictError: If the job is not in the expected state
        """
        async with self.db.session() as session:
            job = await self._find(session, namespace, name, for_update=True)
            if job is None:
                raise JobNotFoundError(namespace, name)

            previous = IntegrationJobState(job.state)
            if expected is not None and previous != expected:
                raise StateConflictError(job.id, expected.value, previous.value)

            job.state = state
            if message is not None:
                job.message = message
            if status is not None:
                job.status = status
            stamp_transition(job, previous, state)

            session.add(job)
            await session.commit()
            await session.refresh(job)

        logger.info(f"Updated job {job.key} state to {state.value}")
        await self._publish("updated", job)
        return job

    async def delete_job(self, namespace: str, name: str) -> bool:
        async with self.db.session() as session:
            job = await self._find(session, namespace, name)
            if job is None:
                return False
            await session.delete(job)
            await session.commit()

        logger.info(f"Deleted job {job.key}")
        await self._publish("deleted", job)
        return True

    async def delete_finished_before(self, cutoff: datetime) -> int:
        """
        Delete jobs in a terminal state that completed before ``cutoff``.

        Returns:
            Number of deleted jobs
        """
        async with self.db.session() as session:
            statement = select(IntegrationJob).where(
                IntegrationJob.completed_at.is_not(None),
                IntegrationJob.completed_at < cutoff,
            )
            result = await session.execute(statement)
            jobs = [job for job in result.scalars().all() if IntegrationJobState(job.state).is_terminal]
            for job in jobs:
                await session.delete(job)
            await session.commit()

        for job in jobs:
            await self._publish("deleted", job)
        return len(jobs)

    async def _find(self, session, namespace: str, name: str, for_update: bool = False) -> Optional[IntegrationJob]:
        statement = select(IntegrationJob).where(
            IntegrationJob.namespace == namespace,
            IntegrationJob.name == name,
        )
        if for_update:
            statement = statement.with_for_update()
        result = await session.execute(statement)
        return result.scalars().first()

    async def _publish(self, event: str, job: IntegrationJob) -> None:
        """Announce a job write on the events channel."""
        if self.redis is None:
            return
        try:
            await self.redis.publish(
                self.events_channel,
                json.dumps({
                    "type": event,
                    "id": job.id,
                    "namespace": job.namespace,
                    "name": job.name,
                    "state": IntegrationJobState(job.state).value,
                }),
            )
        except Exception as e:
            logger.warning(f"Error publishing {event} event for job {job.key}: {e}")
