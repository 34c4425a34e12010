"""
Config Watcher

Watches config resources and dispatches genuine changes to the handler
registered for each resource name. Duplicate deliveries of a version that was
already handled are dropped.
"""
import asyncio
from typing import Callable, Dict, Iterable, Mapping, Optional

import structlog

from ..errors import ConfigNotFoundError
from .store import ConfigResource, ConfigStore

logger = structlog.get_logger(__name__)

# Applies a config resource's data; raises to report a failure
Handler = Callable[[Mapping[str, str]], None]


class ConfigWatcher:
    """
    Routes config resource changes to handlers.

    Handlers must be registered before ``start``. Events are processed one at
    a time, so handler invocations for a resource are serialized and follow
    arrival order.
    """

    def __init__(self, store: ConfigStore, retry_seconds: float = 1.0):
        self.store = store
        self.retry_seconds = retry_seconds
        self.handlers: Dict[str, Handler] = {}
        self.last_resource_versions: Dict[str, str] = {}
        self._task: Optional[asyncio.Task] = None

    def register(self, name: str, handler: Handler) -> None:
        self.handlers[name] = handler

    def reconcile(self, resource: Optional[ConfigResource]) -> bool:
        """
        Dispatch one observed resource.

        Returns:
            True if the handler was invoked

        Raises:
            Whatever the handler raises; the version is recorded regardless
        """
        if resource is None:
            return False

        handler = self.handlers.get(resource.name)
        if handler is None:
            return False

        if self.last_resource_versions.get(resource.name) == resource.version:
            return False
        self.last_resource_versions[resource.name] = resource.version

        logger.info("config_changed", name=resource.name, version=resource.version)
        handler(resource.data)
        return True

    async def check_exists(self, names: Iterable[str]) -> None:
        """
        Raises:
            ConfigNotFoundError: If any of ``names`` does not exist
        """
        for name in names:
            if await self.store.get(name) is None:
                raise ConfigNotFoundError(name)

    async def watch(self) -> None:
        """Consume one watch stream until it ends or fails."""
        async for resource in self.store.watch(self.handlers.keys()):
            try:
                self.reconcile(resource)
            except Exception as e:
                logger.error("config_handler_failed", name=resource.name, version=resource.version, error=str(e))

    async def run(self) -> None:
        """Watch forever, restarting the stream whenever it drops."""
        while True:
            try:
                await self.watch()
                logger.info("config_watch_closed")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("config_watch_failed", error=str(e))
            await asyncio.sleep(self.retry_seconds)

    async def start(self, required: Iterable[str] = ()) -> None:
        """
        Check that ``required`` resources exist and start the watch loop.

        Raises:
            ConfigNotFoundError: If a required resource is missing
        """
        await self.check_exists(required)
        self._task = asyncio.create_task(self.run())
        logger.info("config_watcher_started", resources=sorted(self.handlers))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
