"""
Executor Adapter

Bridges the scheduler with the external pipeline executor.
Promoting a job appends a start request to a Redis stream that the executor
consumes; the executor reports results back through the job API.
"""
import json
import logging
import time
from typing import Any, Dict, Protocol

import redis.asyncio as redis

from .models import IntegrationJob

logger = logging.getLogger(__name__)


class StartRequester(Protocol):
    """Issues start-execution requests for promoted jobs."""

    async def start(self, job: IntegrationJob) -> str:
        ...


class ExecutorAdapter:
    """
    Sends start requests to the executor over Redis Streams.

    Requests are deduplicated per claim (job id and attempt number): starting
    the same claim again returns the first request instead of issuing another
    one, while a job that was re-queued and claimed again gets a new request.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        stream_key: str = "pipelineruns:stream",
        dedupe_ttl_seconds: int = 86400,
    ):
        self.redis = redis_client
        self.stream_key = stream_key
        self.dedupe_ttl_seconds = dedupe_ttl_seconds
        self.dedupe_prefix = "pipelineruns:started:"

    def _convert_job_to_request(self, job: IntegrationJob) -> Dict[str, Any]:
        """Convert an IntegrationJob to the executor's start request format."""
        return {
            "job_id": job.id,
            "namespace": job.namespace,
            "name": job.name,
            "attempt": job.attempts,
            "timestamp": time.time(),
            "status": json.dumps(job.status or {}),
        }

    def _dedupe_key(self, job: IntegrationJob) -> str:
        return f"{self.dedupe_prefix}{job.id}:{job.attempts}"

    async def start(self, job: IntegrationJob) -> str:
        """
        Request execution of ``job``.

        Returns:
            Stream message id of the (possibly earlier) start request
        """
        dedupe_key = self._dedupe_key(job)
        existing = await self.redis.get(dedupe_key)
        if existing:
            if isinstance(existing, bytes):
                existing = existing.decode("utf-8")
            logger.info(f"Start request for job {job.key} already issued: {existing}")
            return existing

        message_id = await self.redis.xadd(
            self.stream_key,
            self._convert_job_to_request(job),
            maxlen=10000,  # Keep last 10k requests
        )
        if isinstance(message_id, bytes):
            message_id = message_id.decode("utf-8")

        await self.redis.setex(dedupe_key, self.dedupe_ttl_seconds, message_id)
        logger.info(f"Issued start request {message_id} for job {job.key}")
        return message_id

    async def forget(self, job: IntegrationJob) -> None:
        """Drop the dedupe record of the job's current claim (after it was deleted)."""
        await self.redis.delete(self._dedupe_key(job))

