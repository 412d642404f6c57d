import json
import logging
from typing import Any

from fastapi import Request, Response
from pydantic import BaseModel

from scanner_adapter.api.mime_types import MimeType, MIME_TYPE_ERROR
from scanner_adapter.exceptions import AdapterError
from scanner_adapter.models import Error

logger = logging.getLogger(__name__)


def write_json(payload: Any, mime_type: MimeType, status_code: int) -> Response:
    """
    Serialize a payload as JSON under the given media type.

    Args:
        payload: pydantic model or any JSON-compatible value
        mime_type: Media type sent as Content-Type
        status_code: HTTP status code of the response
    """
    if isinstance(payload, BaseModel):
        body = payload.model_dump_json()
    else:
        body = json.dumps(payload)
    return Response(content=body, status_code=status_code, media_type=str(mime_type))


def write_json_error(error: Error) -> Response:
    return write_json(error, MIME_TYPE_ERROR, error.http_code)


async def adapter_error_handler(request: Request, exc: AdapterError) -> Response:
    """Answer every AdapterError raised by a route with the error envelope."""
    return write_json_error(Error(http_code=exc.http_code, message=exc.message))
