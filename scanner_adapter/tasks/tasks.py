import asyncio
import logging

from celery import Celery

from scanner_adapter.config import load_config, get_scanner_metadata
from scanner_adapter.models import ScanRequest, ScanJobStatus, Scanner
from scanner_adapter.store import RedisStore
from scanner_adapter.trivy.report import convert_report
from scanner_adapter.trivy.wrapper import TrivyWrapper, image_reference

logger = logging.getLogger(__name__)

config = load_config()

celery_app = Celery(
    "scanner_adapter",
    broker=config.redis_store.redis_url,
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_ignore_result=True,
)


async def run_scan_job(job_id: str, request: ScanRequest, store: RedisStore, wrapper: TrivyWrapper, scanner: Scanner) -> None:
    """
    Scan the requested artifact and record the outcome on the scan job.

    The job moves to Pending before Trivy starts, then to Finished with the
    report, or to Failed with the error text. A job that is already Pending
    was picked up by a worker that died before finishing it, so the scan is
    run again. Jobs that are gone or already terminal are left alone.
    """
    job = await store.get(job_id)
    if job is None:
        logger.warning(f"Scan job {job_id} no longer exists, skipping")
        return

    if job.status == ScanJobStatus.QUEUED:
        await store.update_status(job_id, ScanJobStatus.PENDING)
    elif job.status == ScanJobStatus.PENDING:
        logger.warning(f"Scan job {job_id} is already pending, resuming redelivered job")
    else:
        logger.info(f"Scan job {job_id} is already {job.status}, skipping")
        return

    try:
        trivy_output = wrapper.scan(image_reference(request), request.registry.authorization)
        report = convert_report(request, scanner, trivy_output)
        await store.set_report(job_id, report.model_dump(mode='json'))
    except Exception as e:
        logger.error(f"Scan job {job_id} failed: {e}")
        await store.fail(job_id, str(e) or type(e).__name__)
        return

    logger.info(f"Scan job {job_id} finished with {len(report.vulnerabilities)} vulnerabilities")


@celery_app.task(bind=True)
def scan_task(self, job_id: str, request_data: dict) -> None:
    store = RedisStore.from_config(config.redis_store)
    wrapper = TrivyWrapper(config.trivy)
    request = ScanRequest(**request_data)

    async def _run():
        try:
            await run_scan_job(job_id, request, store, wrapper, get_scanner_metadata())
        finally:
            await store.close()

    logger.info(f"Worker {self.request.hostname} picked up scan job {job_id}")
    asyncio.run(_run())
