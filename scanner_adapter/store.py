import logging
from datetime import timedelta
from typing import Any, Optional, Protocol

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from scanner_adapter.config import RedisStoreConfig
from scanner_adapter.exceptions import StoreError, InvalidTransitionError
from scanner_adapter.models import ScanJob, ScanJobStatus

logger = logging.getLogger(__name__)


class Store(Protocol):
    """Read access to scan jobs, as needed by the report endpoint."""

    async def get(self, job_id: str) -> Optional[ScanJob]:
        """Return the scan job, or None if there is no job with this id."""
        ...


class RedisStore:
    """
    Scan jobs kept in Redis as JSON documents with a time to live.

    The web process only reads jobs; the enqueuer creates them and the scan
    worker moves them through Queued -> Pending -> Finished | Failed.
    """

    def __init__(self, client: redis.Redis, namespace: str, scan_job_ttl: timedelta):
        self._redis = client
        self._namespace = namespace
        self._ttl = scan_job_ttl

    @classmethod
    def from_config(cls, config: RedisStoreConfig) -> "RedisStore":
        client = redis.from_url(config.redis_url)
        return cls(client, config.namespace, config.scan_job_ttl)

    def _key(self, job_id: str) -> str:
        return f"{self._namespace}:scan-job:{job_id}"

    async def create(self, job: ScanJob) -> None:
        try:
            created = await self._redis.set(self._key(job.id), job.model_dump_json(), ex=self._ttl, nx=True)
        except RedisError as e:
            raise StoreError(f"creating scan job {job.id}", e)
        if not created:
            raise StoreError(f"duplicate scan job {job.id}")
        logger.debug(f"Created scan job {job.id}")

    async def get(self, job_id: str) -> Optional[ScanJob]:
        try:
            raw = await self._redis.get(self._key(job_id))
        except RedisError as e:
            raise StoreError(f"reading scan job {job_id}", e)

        if raw is None:
            return None

        try:
            return ScanJob.model_validate_json(raw)
        except ValidationError as e:
            raise StoreError(f"decoding scan job {job_id}", e)

    async def update_status(self, job_id: str, status: ScanJobStatus) -> ScanJob:
        return await self._transition(job_id, status)

    async def set_report(self, job_id: str, report: Any) -> ScanJob:
        return await self._transition(job_id, ScanJobStatus.FINISHED, report=report)

    async def fail(self, job_id: str, error: str) -> ScanJob:
        return await self._transition(job_id, ScanJobStatus.FAILED, error=error)

    async def _transition(self, job_id: str, status: ScanJobStatus, report: Any = None, error: Optional[str] = None) -> ScanJob:
        job = await self.get(job_id)
        if job is None:
            raise StoreError(f"cannot find scan job {job_id}")

        current = job.status
        if not isinstance(current, ScanJobStatus) or not current.can_transition_to(status):
            raise InvalidTransitionError(job_id, str(current), str(status))

        updated = job.model_copy(update={"status": status, "report": report, "error": error})
        try:
            await self._redis.set(self._key(job_id), updated.model_dump_json(), ex=self._ttl, xx=True)
        except RedisError as e:
            raise StoreError(f"updating scan job {job_id}", e)

        logger.debug(f"Scan job {job_id} moved from {current} to {status}")
        return updated

    async def close(self) -> None:
        await self._redis.aclose()
