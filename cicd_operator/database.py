"""
Operator Database

Engine and session factory for the integration job table.
"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
import structlog

from .config import OperatorSettings
from .control_plane.models import IntegrationJob

logger = structlog.get_logger(__name__)


class Database:
    """
    Database connection manager.

    Uses async SQLModel with asyncpg. Sessions are short-lived: the job store
    opens one per operation.
    """

    def __init__(self, settings: OperatorSettings) -> None:
        self._settings = settings
        pool_options = {}
        if settings.database_pool_size is not None:
            pool_options["pool_size"] = settings.database_pool_size
        if settings.database_max_overflow is not None:
            pool_options["max_overflow"] = settings.database_max_overflow
        self._engine: AsyncEngine = create_async_engine(
            settings.postgres_dsn,
            pool_pre_ping=True,
            echo=False,
            **pool_options,
        )
        self._session_factory = sessionmaker(
            bind=self._engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    def session(self) -> AsyncSession:
        return self._session_factory()

    async def init_models(self) -> None:
        """
        Create the integration job table if it does not exist.

        Skipped when ``skip_init_models`` is set (schema managed by migrations).
        """
        if self._settings.skip_init_models:
            logger.info("init_models_skipped")
            return

        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all, tables=[IntegrationJob.__table__])
        logger.info("operator_tables_initialized", tables=[IntegrationJob.__tablename__])

    async def dispose(self) -> None:
        await self._engine.dispose()
