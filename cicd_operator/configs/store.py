"""
Config resource store.

Config resources are flat string maps kept in Redis. Every write bumps the
resource's version token and announces the resource name on a pub/sub
channel, which is what the config watcher listens to.
"""
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Iterable, Mapping, Optional, Protocol

import redis.asyncio as redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigResource:
    """A config resource as observed at one version."""
    name: str
    version: str
    data: Dict[str, str] = field(default_factory=dict)


class ConfigStore(Protocol):
    """Read and watch access to config resources."""

    async def get(self, name: str) -> Optional[ConfigResource]:
        """Current state of the resource, or None if it does not exist."""
        ...

    def watch(self, names: Iterable[str]) -> AsyncIterator[ConfigResource]:
        """
        Yield the current state of every existing resource in ``names``,
        then every later change to one of them. Deliveries may repeat.
        """
        ...


class RedisConfigStore:
    """ConfigStore on Redis hashes and a pub/sub channel."""

    def __init__(self, redis_client: redis.Redis, namespace: str = "default"):
        self.redis = redis_client
        self.key_prefix = f"config:{namespace}:"
        self.events_channel = f"config:{namespace}:events"

    def _data_key(self, name: str) -> str:
        return f"{self.key_prefix}{name}"

    def _version_key(self, name: str) -> str:
        return f"{self.key_prefix}{name}:version"

    async def get(self, name: str) -> Optional[ConfigResource]:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hgetall(self._data_key(name))
            pipe.get(self._version_key(name))
            data, version = await pipe.execute()

        if version is None:
            return None
        if isinstance(version, bytes):
            version = version.decode("utf-8")
        data = {
            (k.decode("utf-8") if isinstance(k, bytes) else k): (v.decode("utf-8") if isinstance(v, bytes) else v)
            for k, v in (data or {}).items()
        }
        return ConfigResource(name=name, version=str(version), data=data)

    async def put(self, name: str, data: Mapping[str, str]) -> str:
        """
        Replace the resource's data and bump its version.

        Returns:
            The new version token
        """
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._data_key(name))
            if data:
                pipe.hset(self._data_key(name), mapping=dict(data))
            pipe.incr(self._version_key(name))
            results = await pipe.execute()

        version = str(results[-1])
        await self.redis.publish(self.events_channel, name)
        logger.info(f"Config {name} written at version {version}")
        return version

    async def watch(self, names: Iterable[str]) -> AsyncIterator[ConfigResource]:
        names = set(names)
        pubsub = self.redis.pubsub()
        # Subscribe before the initial read so no write slips in between
        await pubsub.subscribe(self.events_channel)
        try:
            for name in sorted(names):
                resource = await self.get(name)
                if resource is not None:
                    yield resource

            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                name = message["data"]
                if isinstance(name, bytes):
                    name = name.decode("utf-8")
                if name not in names:
                    continue
                resource = await self.get(name)
                if resource is not None:
                    yield resource
        finally:
            await pubsub.unsubscribe(self.events_channel)
            await pubsub.aclose()
