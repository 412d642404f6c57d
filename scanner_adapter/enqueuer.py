import uuid
import logging
from typing import Protocol

from fastapi.concurrency import run_in_threadpool

from scanner_adapter.exceptions import EnqueueError, StoreError
from scanner_adapter.models import ScanJob, ScanJobStatus, ScanRequest
from scanner_adapter.store import RedisStore

logger = logging.getLogger(__name__)


class Enqueuer(Protocol):
    """Admits a validated scan request and creates its scan job."""

    async def enqueue(self, request: ScanRequest) -> ScanJob:
        ...


class CeleryEnqueuer:
    """
    Creates the scan job record and hands the scan over to a Celery worker.

    The Celery task id is the scan job id, so the worker and the store agree on
    the identifier without any extra bookkeeping.
    """

    def __init__(self, store: RedisStore, task):
        """
        Args:
            store: Store the job record is created in
            task: Celery task running the scan, called as ``task(job_id, request_data)``
        """
        self._store = store
        self._task = task

    async def enqueue(self, request: ScanRequest) -> ScanJob:
        job = ScanJob(id=str(uuid.uuid4()), status=ScanJobStatus.QUEUED)
        await self._store.create(job)

        try:
            await run_in_threadpool(
                self._task.apply_async,
                args=[job.id, request.model_dump(mode='json')],
                task_id=job.id,
            )
        except Exception as e:
            logger.error(f"Failed to dispatch scan job {job.id}: {e}")
            try:
                await self._store.fail(job.id, f"dispatching scan job: {e}")
            except StoreError as store_error:
                logger.error(f"Failed to mark scan job {job.id} as failed: {store_error}")
            raise EnqueueError("dispatching scan job", e)

        logger.info(f"Scan job enqueued with id: {job.id}")
        return job
