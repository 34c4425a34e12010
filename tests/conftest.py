"""
Test fixtures.

In-memory stand-ins for the operator's external collaborators:
  - FakeJobStore: the integration job table
  - FakeExecutor: the executor's start request stream
  - FakeConfigStore: the config resource store

Adapters run against fakeredis and a throwaway SQLite database.
"""
import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from cicd_operator.config import OperatorSettings
from cicd_operator.configs import ConfigResource
from cicd_operator.configs import controller
from cicd_operator.control_plane.models import IntegrationJob, IntegrationJobState, stamp_transition
from cicd_operator.database import Database
from cicd_operator.errors import JobNotFoundError, StateConflictError


# Fixed time for deterministic ordering
FIXED_DATETIME = datetime(2026, 1, 1, 0, 0, 0)


def make_job(
    name: str,
    namespace: str = "default",
    created_at: datetime = FIXED_DATETIME,
    state: IntegrationJobState = IntegrationJobState.PENDING,
) -> IntegrationJob:
    return IntegrationJob(
        id=str(uuid.uuid4()),
        namespace=namespace,
        name=name,
        created_at=created_at,
        state=state,
        status={},
    )


class FakeJobStore:
    """In-memory job store with switchable failures."""

    def __init__(self):
        self.jobs: Dict[str, IntegrationJob] = {}
        self.fail_list = False
        self.fail_update: set = set()
        self.list_delay = 0.0
        self.list_calls = 0
        self._listing = 0
        self.max_concurrent_listing = 0
        self.cutoffs: List[datetime] = []

    def add(
        self,
        name: str,
        namespace: str = "default",
        created_at: datetime = FIXED_DATETIME,
        state: IntegrationJobState = IntegrationJobState.PENDING,
    ) -> IntegrationJob:
        job = make_job(name, namespace, created_at, state)
        self.jobs[job.key] = job
        return job

    async def list_jobs(self) -> List[IntegrationJob]:
        if self.fail_list:
            raise ConnectionError("database unavailable")
        self.list_calls += 1
        self._listing += 1
        self.max_concurrent_listing = max(self.max_concurrent_listing, self._listing)
        try:
            if self.list_delay:
                await asyncio.sleep(self.list_delay)
            return sorted(self.jobs.values(), key=lambda job: job.created_at)
        finally:
            self._listing -= 1

    async def get_job(self, namespace: str, name: str) -> Optional[IntegrationJob]:
        return self.jobs.get(f"{namespace}/{name}")

    async def create_job(self, namespace: str, name: str, status: Optional[Dict[str, Any]] = None) -> IntegrationJob:
        if f"{namespace}/{name}" in self.jobs:
            raise IntegrityError("INSERT INTO integration_jobs", {}, Exception("duplicate key"))
        job = self.add(name, namespace, created_at=datetime.utcnow())
        job.status = status or {}
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
        key = f"{namespace}/{name}"
        if key in self.fail_update:
            raise ConnectionError("database unavailable")
        job = self.jobs.get(key)
        if job is None:
            raise JobNotFoundError(namespace, name)
        previous = job.state
        if expected is not None and previous != expected:
            raise StateConflictError(job.id, expected.value, previous.value)
        job.state = state
        if message is not None:
            job.message = message
        if status is not None:
            job.status = status
        stamp_transition(job, previous, state)
        return job

    async def delete_job(self, namespace: str, name: str) -> bool:
        return self.jobs.pop(f"{namespace}/{name}", None) is not None

    async def delete_finished_before(self, cutoff: datetime) -> int:
        self.cutoffs.append(cutoff)
        expired = [
            key for key, job in self.jobs.items()
            if job.state.is_terminal and job.completed_at is not None and job.completed_at < cutoff
        ]
        for key in expired:
            del self.jobs[key]
        return len(expired)


class FakeExecutor:
    """Records start requests; can be told to fail."""

    def __init__(self):
        self.started: List[str] = []
        self.forgotten: List[str] = []
        self.fail = False

    async def start(self, job: IntegrationJob) -> str:
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.started.append(job.key)
        return f"{len(self.started)}-0"

    async def forget(self, job: IntegrationJob) -> None:
        self.forgotten.append(job.id)


class FakeConfigStore:
    """Config store whose watch stream replays a scripted list of resources."""

    def __init__(self):
        self.resources: Dict[str, ConfigResource] = {}
        self.stream: List[ConfigResource] = []
        self.watch_calls = 0

    async def put(self, name: str, data: Dict[str, str]) -> str:
        current = self.resources.get(name)
        version = str(int(current.version) + 1) if current else "1"
        self.resources[name] = ConfigResource(name=name, version=version, data=dict(data))
        return version

    async def get(self, name: str) -> Optional[ConfigResource]:
        return self.resources.get(name)

    async def watch(self, names: Iterable[str]):
        self.watch_calls += 1
        names = set(names)
        for resource in self.stream:
            if resource.name in names:
                yield resource


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture(autouse=True)
def reset_controller_config():
    """Process-wide settings start from their initial values in every test."""
    controller.reset()
    yield
    controller.reset()


@pytest.fixture
def job_store() -> FakeJobStore:
    return FakeJobStore()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def config_store() -> FakeConfigStore:
    return FakeConfigStore()


@pytest.fixture
def minutes() -> Callable[[int], datetime]:
    """Timestamps relative to FIXED_DATETIME."""
    return lambda n: FIXED_DATETIME + timedelta(minutes=n)


@pytest_asyncio.fixture
async def redis_client():
    """An isolated in-memory Redis server per test."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def database(tmp_path):
    """Operator database on a SQLite file, tables created."""
    settings = OperatorSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'operator.db'}",
        database_pool_size=None,
        database_max_overflow=None,
        skip_init_models=False,
    )
    db = Database(settings)
    await db.init_models()
    yield db
    await db.dispose()
