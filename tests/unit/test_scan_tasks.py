"""Unit tests for the scan worker."""
import pytest
import sys
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, call

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from scanner_adapter.exceptions import WrapperError
from scanner_adapter.models import ScanJob, ScanJobStatus, ScanRequest, Scanner
from scanner_adapter.store import RedisStore
from scanner_adapter.tasks.tasks import run_scan_job
from tests.utils.helpers import InMemoryRedis, TRIVY_IMAGE_OUTPUT, valid_scan_request_body

SCANNER = Scanner(name="Trivy", vendor="Aqua Security", version="0.50.1")


@pytest.fixture
def store():
    store = AsyncMock()
    store.get.return_value = ScanJob(id="job-1")
    return store


@pytest.fixture
def wrapper():
    wrapper = MagicMock()
    wrapper.scan.return_value = TRIVY_IMAGE_OUTPUT
    return wrapper


@pytest.fixture
def redis_store():
    return RedisStore(InMemoryRedis(), "harbor.scanner.trivy:store", timedelta(hours=1))


@pytest.mark.asyncio
class TestRunScanJob:

    async def test_successful_scan(self, store, wrapper):
        request = ScanRequest(**valid_scan_request_body())

        await run_scan_job("job-1", request, store, wrapper, SCANNER)

        store.update_status.assert_awaited_once_with("job-1", ScanJobStatus.PENDING)
        wrapper.scan.assert_called_once_with(
            "core.harbor.domain/library/mongo@sha256:6c3c624b58dbbcd3c0dd82b4c53f04194d1247c6eebdaab7c610cf7d66709b3b",
            "Basic dXNlcjpwYXNzd29yZA==",
        )
        store.fail.assert_not_awaited()

        job_id, report = store.set_report.await_args.args
        assert job_id == "job-1"
        assert report["severity"] == "High"
        assert len(report["vulnerabilities"]) == 2
        assert report["scanner"] == {"name": "Trivy", "vendor": "Aqua Security", "version": "0.50.1"}

    async def test_job_is_pending_before_scan_starts(self, store, wrapper):
        events = MagicMock()
        store.update_status.side_effect = lambda *args: events.pending()
        wrapper.scan.side_effect = lambda *args: events.scan() or TRIVY_IMAGE_OUTPUT

        await run_scan_job("job-1", ScanRequest(**valid_scan_request_body()), store, wrapper, SCANNER)

        assert events.mock_calls == [call.pending(), call.scan()]

    async def test_trivy_failure_marks_job_failed(self, store, wrapper):
        wrapper.scan.side_effect = WrapperError("running trivy: exit status 1: unauthorized")

        await run_scan_job("job-1", ScanRequest(**valid_scan_request_body()), store, wrapper, SCANNER)

        store.fail.assert_awaited_once_with("job-1", "running trivy: exit status 1: unauthorized")
        store.set_report.assert_not_awaited()

    async def test_unexpected_trivy_output_marks_job_failed(self, redis_store, wrapper):
        """Trivy printing `null` breaks the report conversion; the job must still end up Failed."""
        await redis_store.create(ScanJob(id="job-1"))
        wrapper.scan.return_value = None

        await run_scan_job("job-1", ScanRequest(**valid_scan_request_body()), redis_store, wrapper, SCANNER)

        job = await redis_store.get("job-1")
        assert job.status == ScanJobStatus.FAILED
        assert job.error
        assert job.report is None

    async def test_unexpected_exception_marks_job_failed(self, store, wrapper):
        wrapper.scan.side_effect = KeyError("Results")

        await run_scan_job("job-1", ScanRequest(**valid_scan_request_body()), store, wrapper, SCANNER)

        store.fail.assert_awaited_once_with("job-1", "'Results'")
        store.set_report.assert_not_awaited()

    async def test_redelivered_pending_job_is_resumed(self, redis_store, wrapper):
        await redis_store.create(ScanJob(id="job-1"))
        await redis_store.update_status("job-1", ScanJobStatus.PENDING)

        await run_scan_job("job-1", ScanRequest(**valid_scan_request_body()), redis_store, wrapper, SCANNER)

        job = await redis_store.get("job-1")
        assert job.status == ScanJobStatus.FINISHED
        assert job.report["severity"] == "High"
        wrapper.scan.assert_called_once()

    async def test_redelivered_pending_job_can_fail(self, redis_store, wrapper):
        await redis_store.create(ScanJob(id="job-1"))
        await redis_store.update_status("job-1", ScanJobStatus.PENDING)
        wrapper.scan.side_effect = WrapperError("running trivy: exit status 1: unauthorized")

        await run_scan_job("job-1", ScanRequest(**valid_scan_request_body()), redis_store, wrapper, SCANNER)

        job = await redis_store.get("job-1")
        assert job.status == ScanJobStatus.FAILED
        assert job.error == "running trivy: exit status 1: unauthorized"

    @pytest.mark.parametrize("status", [ScanJobStatus.FINISHED, ScanJobStatus.FAILED])
    async def test_terminal_job_is_not_scanned_again(self, store, wrapper, status):
        store.get.return_value = ScanJob(id="job-1", status=status)

        await run_scan_job("job-1", ScanRequest(**valid_scan_request_body()), store, wrapper, SCANNER)

        wrapper.scan.assert_not_called()
        store.update_status.assert_not_awaited()
        store.fail.assert_not_awaited()

    async def test_expired_job_is_skipped(self, store, wrapper):
        store.get.return_value = None

        await run_scan_job("job-1", ScanRequest(**valid_scan_request_body()), store, wrapper, SCANNER)

        wrapper.scan.assert_not_called()
        store.set_report.assert_not_awaited()
