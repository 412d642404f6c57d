import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import AnyUrl, TypeAdapter, ValidationError

from scanner_adapter.api.middleware import request_uri
from scanner_adapter.api.mime_types import (
    HEADER_ACCEPT, HEADER_LOCATION, MIME_TYPE_SCAN_RESPONSE, negotiate_report_mime_type,
)
from scanner_adapter.api.responses import write_json, write_json_error
from scanner_adapter.dependencies import get_enqueuer, get_store
from scanner_adapter.enqueuer import Enqueuer
from scanner_adapter.exceptions import BadRequestError, InternalServerError, NotFoundError
from scanner_adapter.models import Error, ScanJobStatus, ScanRequest, ScanResponse
from scanner_adapter.store import Store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

PATH_VAR_SCAN_REQUEST_ID = "scan_request_id"

_absolute_uri = TypeAdapter(AnyUrl)


def validate_scan_request(req: ScanRequest) -> Optional[Error]:
    """
    Check the required fields of a scan request.

    Checks run in a fixed order and stop at the first violation:
    registry.url present, registry.url an absolute URI, artifact.repository
    present, artifact.digest present.

    Returns:
        None when the request is valid, otherwise a 422 Error
    """
    if not req.registry.url:
        return Error(http_code=422, message="missing registry.url")

    try:
        _absolute_uri.validate_python(req.registry.url)
    except ValidationError:
        return Error(http_code=422, message="invalid registry.url")

    if not req.artifact.repository:
        return Error(http_code=422, message="missing artifact.repository")

    if not req.artifact.digest:
        return Error(http_code=422, message="missing artifact.digest")

    return None


@router.post("/scan")
async def accept_scan_request(request: Request, enqueuer: Enqueuer = Depends(get_enqueuer)) -> Response:
    body = await request.body()
    try:
        scan_request = ScanRequest.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Error while unmarshalling scan request: {e}")
        raise BadRequestError(f"unmarshalling scan request: {e}")

    validation_error = validate_scan_request(scan_request)
    if validation_error:
        logger.error(f"Error while validating scan request: {validation_error.message}")
        return write_json_error(validation_error)

    try:
        scan_job = await enqueuer.enqueue(scan_request)
    except Exception as e:
        logger.error(f"Error while enqueuing scan job: {e}")
        raise InternalServerError(f"enqueuing scan job: {e}")

    return write_json(ScanResponse(id=scan_job.id), MIME_TYPE_SCAN_RESPONSE, 202)


@router.get("/scan/{scan_request_id}/report")
async def get_scan_report(request: Request, store: Store = Depends(get_store)) -> Response:
    """
    Answer a report poll for a scan job.

    Queued and Pending jobs are answered with 302 back to the same URL; the
    client polls again later. The handler never waits for the scan.
    """
    report_mime_type = negotiate_report_mime_type(request.headers.get(HEADER_ACCEPT))

    scan_job_id = request.path_params.get(PATH_VAR_SCAN_REQUEST_ID)
    if not scan_job_id:
        logger.error("Error while parsing `scan_request_id` path variable")
        raise BadRequestError("missing scan_request_id")

    try:
        scan_job = await store.get(scan_job_id)
    except Exception as e:
        logger.error(f"Error while getting scan job {scan_job_id}: {e}")
        raise InternalServerError(f"getting scan job {scan_job_id}: {e}")

    if scan_job is None:
        logger.error(f"Cannot find scan job {scan_job_id}")
        raise NotFoundError(f"cannot find scan job: {scan_job_id}")

    if scan_job.status in (ScanJobStatus.QUEUED, ScanJobStatus.PENDING):
        logger.debug(f"Scan job {scan_job_id} has not finished yet, status: {scan_job.status}")
        return Response(status_code=302, headers={HEADER_LOCATION: request_uri(request)})

    if scan_job.status == ScanJobStatus.FAILED:
        logger.error(f"Scan job {scan_job_id} failed: {scan_job.error}")
        raise InternalServerError(scan_job.error or "")

    if scan_job.status != ScanJobStatus.FINISHED:
        logger.error(f"Unexpected status {scan_job.status} of scan job {scan_job_id}")
        raise InternalServerError(f"unexpected status {scan_job.status} of scan job {scan_job.id}")

    return write_json(scan_job.report, report_mime_type, 200)
