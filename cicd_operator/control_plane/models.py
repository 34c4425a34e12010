"""
Control Plane Data Models

Defines the IntegrationJob model scheduled by the operator.
The database row is the source of truth for job state; the scheduler only
holds lightweight nodes derived from it.
"""
from sqlmodel import SQLModel, Field, Column, JSON
from sqlalchemy import UniqueConstraint
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum as PyEnum


class IntegrationJobState(str, PyEnum):
    """IntegrationJob lifecycle states."""
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELED = "Canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    IntegrationJobState.COMPLETED,
    IntegrationJobState.FAILED,
    IntegrationJobState.CANCELED,
})


class IntegrationJob(SQLModel, table=True):
    """
    Integration job record.

    Identified by (namespace, name). ``created_at`` is the scheduling order
    key; ``status`` carries whatever the executor reports back.
    """
    __tablename__ = "integration_jobs"
    __table_args__ = (UniqueConstraint("namespace", "name", name="uq_integration_jobs_namespace_name"),)

    id: str = Field(primary_key=True, description="UUID job identifier")
    namespace: str = Field(index=True, description="Namespace of the job")
    name: str = Field(index=True, description="Name of the job, unique in its namespace")
    state: IntegrationJobState = Field(default=IntegrationJobState.PENDING, index=True, description="Current job state")
    status: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON), description="Status payload reported by the executor")
    message: Optional[str] = Field(default=None, description="Human readable reason of the last state change")
    attempts: int = Field(default=0, description="Times the job was claimed as Running")
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    @property
    def key(self) -> str:
        """Identity string used for ordering ties and deduplication."""
        return f"{self.namespace}/{self.name}"


def stamp_transition(job: IntegrationJob, previous: IntegrationJobState, state: IntegrationJobState) -> None:
    """
    Maintain the claim counter and timestamps for a state change.

    A job that goes back to Pending is a new attempt: its timestamps are
    cleared so that neither the next claim nor the collector sees the old ones.
    """
    if state == previous:
        return
    if state == IntegrationJobState.PENDING:
        job.started_at = None
        job.completed_at = None
    elif state == IntegrationJobState.RUNNING:
        job.attempts = (job.attempts or 0) + 1
        job.started_at = datetime.utcnow()
        job.completed_at = None
    elif state.is_terminal:
        job.completed_at = datetime.utcnow()
