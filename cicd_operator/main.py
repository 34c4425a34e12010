"""
CI/CD Operator API

FastAPI application hosting the integration job scheduler, the config
watcher and the job management endpoints.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, status
from pydantic import BaseModel, Field
from redis.asyncio import Redis
from sqlalchemy.exc import IntegrityError

from .config import OperatorSettings
from .configs import ConfigWatcher, RedisConfigStore
from .configs import controller
from .control_plane.collector import JobCollector
from .control_plane.executor_adapter import ExecutorAdapter
from .control_plane.job_store import SQLJobStore
from .control_plane.models import IntegrationJob, IntegrationJobState
from .control_plane.reconciler import JobReconciler
from .control_plane.scheduler import Scheduler
from .database import Database
from .errors import ConfigNotFoundError, JobNotFoundError, StateConflictError


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ]
    )
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))


# Initialize settings and logging
settings = OperatorSettings()
setup_logging(settings.log_level)
logger = structlog.get_logger(__name__)

# Initialize connections
redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
db = Database(settings)

job_store = SQLJobStore(db, redis_client)
config_store = RedisConfigStore(redis_client, namespace=settings.namespace)
executor = ExecutorAdapter(redis_client)

# Created in lifespan
scheduler: Scheduler | None = None
config_watcher: ConfigWatcher | None = None
reconciler: JobReconciler | None = None
collector: JobCollector | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan: startup and shutdown.

    - Initialize database tables
    - Start the config watcher and wait for the first valid controller config
    - Start scheduler, job reconciler and collector
    - Stop everything on shutdown
    """
    global scheduler, config_watcher, reconciler, collector

    logger.info("operator_starting")
    await db.init_models()

    config_watcher = ConfigWatcher(config_store, retry_seconds=settings.config_watch_retry_seconds)
    config_watcher.register(settings.config_name, controller.apply_controller_config_change)
    config_watcher.register(settings.email_template_name, controller.apply_email_template_config_change)
    try:
        await config_watcher.start(required=[settings.config_name])
    except ConfigNotFoundError as e:
        # No sane defaults without the controller config
        logger.error("config_not_found", name=e.name)
        raise SystemExit(1)

    if not controller.is_controller_initiated():
        logger.info("waiting_for_controller_config", name=settings.config_name)
        await controller.controller_initialized.wait()

    scheduler = Scheduler(job_store, executor, min_gap_seconds=settings.schedule_min_gap_seconds)
    # A new maxPipelineRun may leave room for more jobs
    controller.register_controller_config_update_signal(scheduler.caller)
    scheduler.start()

    reconciler = JobReconciler(redis_client, scheduler, retry_seconds=settings.config_watch_retry_seconds)
    reconciler.start()

    collector = JobCollector(job_store)
    collector.start()

    logger.info("operator_ready", max_pipeline_run=controller.MAX_PIPELINE_RUN.get())

    yield

    logger.info("operator_shutting_down")
    for component in (collector, reconciler, scheduler, config_watcher):
        if component is not None:
            await component.stop()

    await db.dispose()
    await redis_client.aclose()
    logger.info("operator_stopped")


app = FastAPI(
    title="CI/CD Operator API",
    description="""
    Integration job scheduling for the CI/CD operator.

    * **Jobs**: Create, inspect, report on and delete integration jobs
    * **Scheduler**: Inspect pool state and trigger a dispatch pass
    """,
    version="1.0.0",
    lifespan=lifespan,
)


class CreateIntegrationJobRequest(BaseModel):
    namespace: str = Field(min_length=1)
    name: str = Field(min_length=1)
    status: Dict[str, Any] = Field(default_factory=dict)


class PutConfigRequest(BaseModel):
    data: Dict[str, str] = Field(default_factory=dict)


class UpdateStateRequest(BaseModel):
    state: IntegrationJobState
    expected: Optional[IntegrationJobState] = None
    message: Optional[str] = None
    status: Optional[Dict[str, Any]] = None


def get_job_store() -> SQLJobStore:
    """Dependency to get the job store."""
    return job_store


def get_executor() -> ExecutorAdapter:
    """Dependency to get the executor adapter."""
    return executor


def get_config_store() -> RedisConfigStore:
    """Dependency to get the config resource store."""
    return config_store


def get_scheduler() -> Scheduler:
    """Dependency to get the scheduler instance."""
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduler not initialized"
        )
    return scheduler


def job_to_dict(job: IntegrationJob) -> Dict[str, Any]:
    return {
        "id": job.id,
        "namespace": job.namespace,
        "name": job.name,
        "state": IntegrationJobState(job.state).value,
        "status": job.status or {},
        "message": job.message,
        "attempts": job.attempts,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "cicd-operator",
        "initialized": controller.is_controller_initiated(),
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "cicd-operator",
        "version": "1.0.0",
        "status": "operational",
    }


@app.post("/api/v1/integrationjobs", status_code=status.HTTP_201_CREATED)
async def create_integration_job(
    request: CreateIntegrationJobRequest,
    store: SQLJobStore = Depends(get_job_store),
):
    """Create a Pending integration job."""
    try:
        job = await store.create_job(request.namespace, request.name, status=request.status)
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"IntegrationJob {request.namespace}/{request.name} already exists"
        )
    except Exception as e:
        logger.error("job_creation_failed", error=str(e), namespace=request.namespace, name=request.name)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create job: {str(e)}"
        )
    return job_to_dict(job)


@app.get("/api/v1/integrationjobs")
async def list_integration_jobs(store: SQLJobStore = Depends(get_job_store)):
    """List integration jobs, oldest first."""
    jobs = await store.list_jobs()
    return {"items": [job_to_dict(job) for job in jobs]}


@app.get("/api/v1/integrationjobs/{namespace}/{name}")
async def get_integration_job(
    namespace: str,
    name: str,
    store: SQLJobStore = Depends(get_job_store),
):
    job = await store.get_job(namespace, name)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"IntegrationJob {namespace}/{name} not found"
        )
    return job_to_dict(job)


@app.put("/api/v1/integrationjobs/{namespace}/{name}/state")
async def update_integration_job_state(
    namespace: str,
    name: str,
    request: UpdateStateRequest,
    store: SQLJobStore = Depends(get_job_store),
):
    """Report a job's state, e.g. the executor reporting completion."""
    try:
        job = await store.update_state(
            namespace,
            name,
            request.state,
            expected=request.expected,
            message=request.message,
            status=request.status,
        )
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StateConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return job_to_dict(job)


@app.delete("/api/v1/integrationjobs/{namespace}/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_integration_job(
    namespace: str,
    name: str,
    store: SQLJobStore = Depends(get_job_store),
    adapter: ExecutorAdapter = Depends(get_executor),
):
    job = await store.get_job(namespace, name)
    if job is None or not await store.delete_job(namespace, name):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"IntegrationJob {namespace}/{name} not found"
        )
    await adapter.forget(job)


@app.get("/api/v1/scheduler/stats")
async def get_scheduler_stats(sched: Scheduler = Depends(get_scheduler)):
    """Get pool contents and scheduler counters."""
    return sched.stats()


@app.post("/api/v1/scheduler/trigger", status_code=status.HTTP_202_ACCEPTED)
async def trigger_scheduler(sched: Scheduler = Depends(get_scheduler)):
    """Request a dispatch pass."""
    queued = sched.schedule()
    return {"queued": queued}


@app.get("/api/v1/configs/{name}")
async def get_config(name: str, store: RedisConfigStore = Depends(get_config_store)):
    """Get a config resource at its current version."""
    resource = await store.get(name)
    if resource is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Config {name} not found"
        )
    return {"name": resource.name, "version": resource.version, "data": resource.data}


@app.put("/api/v1/configs/{name}")
async def put_config(
    name: str,
    request: PutConfigRequest,
    store: RedisConfigStore = Depends(get_config_store),
):
    """
    Replace a config resource's data.

    The config watcher applies the new version asynchronously; invalid
    values are reported in the operator log, not here.
    """
    version = await store.put(name, request.data)
    logger.info("config_written", name=name, version=version)
    return {"name": name, "version": version}


# For running directly with python -m
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cicd_operator.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )
