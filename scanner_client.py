import aiohttp
import asyncio
import logging

from typing import Optional, Dict, Any

from scanner_adapter.api.mime_types import MIME_TYPE_SECURITY_VULNERABILITY_REPORT
from scanner_adapter.models import ScanRequest, ScanResponse, ScannerAdapterMetadata, Registry, Artifact

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_POLL_INTERVAL = 5


class ScannerAdapterClientError(Exception):
    """Raised for any non-successful answer of the scanner adapter."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}")


class ScannerAdapterClient:
    """
    Client for the scanner adapter API.

    Provides methods to:
    1. Submit scan requests and poll for their reports
    2. Read the adapter metadata

    Example usage:
        async with ScannerAdapterClient("http://localhost:8080") as client:
            report = await client.scan_artifact(
                registry_url="https://core.harbor.domain",
                repository="library/nginx",
                digest="sha256:...",
            )
            print(f"Scan completed: {len(report['vulnerabilities'])} vulnerabilities found")
    """

    def __init__(self, base_url: str, poll_interval: float = DEFAULT_POLL_INTERVAL):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the scanner adapter
            poll_interval: Seconds to wait between report polls
        """
        self.base_url = base_url.rstrip('/')
        self.poll_interval = poll_interval
        self._session: Optional[aiohttp.ClientSession] = None

    async def _request(self, method: str, path: str, timeout: int = DEFAULT_TIMEOUT, **kwargs):
        """
        Make an HTTP request on the client session.

        Outside of ``async with`` a fresh session is opened for the request.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: API endpoint path
            timeout: Request timeout in seconds
            **kwargs: Additional arguments for the request (json, headers, etc.)

        Returns:
            Tuple of status code and decoded JSON body (None for empty bodies)

        Raises:
            ScannerAdapterClientError: If the adapter answers with an error status
            aiohttp.ClientError: If the request fails
        """
        if self._session is None:
            async with aiohttp.ClientSession() as session:
                return await self._send(session, method, path, timeout, **kwargs)
        return await self._send(self._session, method, path, timeout, **kwargs)

    async def _send(self, session: aiohttp.ClientSession, method: str, path: str, timeout: int, **kwargs):
        async with session.request(
            method,
            f"{self.base_url}/{path}",
            timeout=aiohttp.ClientTimeout(total=timeout),
            allow_redirects=False,
            **kwargs
        ) as response:
            body = await response.read()
            data = await response.json(content_type=None) if body else None

            if response.status >= 400:
                message = data.get("message", "") if isinstance(data, dict) else body.decode(errors="replace")
                raise ScannerAdapterClientError(response.status, message)

            return response.status, data

    async def get_metadata(self, timeout: int = DEFAULT_TIMEOUT) -> ScannerAdapterMetadata:
        _, data = await self._request("GET", "api/v1/metadata", timeout=timeout)
        return ScannerAdapterMetadata(**data)

    async def submit_scan(self, scan_request: ScanRequest, timeout: int = DEFAULT_TIMEOUT) -> ScanResponse:
        _, data = await self._request(
            "POST",
            "api/v1/scan",
            timeout=timeout,
            data=scan_request.model_dump_json(),
            headers={"Content-Type": "application/json"},
        )
        return ScanResponse(**data)

    async def get_report(
        self,
        scan_id: str,
        accept: str = str(MIME_TYPE_SECURITY_VULNERABILITY_REPORT),
        timeout: int = DEFAULT_TIMEOUT
    ) -> Optional[Dict[str, Any]]:
        """
        Poll the report of a scan job once.

        Returns:
            The report, or None while the scan is still queued or running

        Raises:
            ScannerAdapterClientError: If the scan failed or the job is unknown
        """
        status, data = await self._request(
            "GET",
            f"api/v1/scan/{scan_id}/report",
            timeout=timeout,
            headers={"Accept": accept},
        )
        if status == 302:
            return None
        return data

    async def scan_artifact(
        self,
        registry_url: str,
        repository: str,
        digest: str,
        authorization: str = "",
        tag: str = "",
        timeout: int = DEFAULT_TIMEOUT
    ) -> Dict[str, Any]:
        """
        Submit a scan and poll until its report is available.

        Raises:
            ScannerAdapterClientError: If submission fails or the scan fails
        """
        scan_request = ScanRequest(
            registry=Registry(url=registry_url, authorization=authorization),
            artifact=Artifact(repository=repository, digest=digest, tag=tag),
        )
        scan_response = await self.submit_scan(scan_request, timeout)
        logger.info(f"Scan submitted with id: {scan_response.id}")

        while True:
            report = await self.get_report(scan_response.id, timeout=timeout)
            if report is not None:
                return report

            logger.info(f"Scan {scan_response.id} not finished yet, polling again in {self.poll_interval}s")
            await asyncio.sleep(self.poll_interval)

    async def close(self):
        """Close the client session, if one is open."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        """Async context manager entry: open the session shared by all requests."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit: close the shared session."""
        await self.close()
