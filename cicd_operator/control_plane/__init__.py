"""
Control Plane Core

Core scheduling components: models, pools, scheduler, store, executor.
"""

from .models import IntegrationJob, IntegrationJobState, TERMINAL_STATES
from .pool import JobNode, OrderedPool, created_before
from .job_pool import JobPool
from .job_store import JobStore, SQLJobStore
from .executor_adapter import ExecutorAdapter, StartRequester
from .scheduler import Scheduler
from .reconciler import JobReconciler
from .collector import JobCollector

__all__ = [
    "IntegrationJob",
    "IntegrationJobState",
    "TERMINAL_STATES",
    "JobNode",
    "OrderedPool",
    "created_before",
    "JobPool",
    "JobStore",
    "SQLJobStore",
    "ExecutorAdapter",
    "StartRequester",
    "Scheduler",
    "JobReconciler",
    "JobCollector",
]
