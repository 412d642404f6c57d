import logging

from fastapi import Request

logger = logging.getLogger(__name__)


def request_uri(request: Request) -> str:
    """Return the request target exactly as received: raw path plus query string."""
    raw_path = request.scope.get("raw_path") or request.scope["path"].encode("utf-8")
    uri = raw_path.split(b"?", 1)[0].decode("latin-1")
    query_string = request.scope.get("query_string", b"")
    if query_string:
        uri += "?" + query_string.decode("latin-1")
    return uri


async def log_request(request: Request, call_next):
    client = request.client
    addr = f"{client.host}:{client.port}" if client else ""
    logger.debug(
        f"Request addr={addr} proto=HTTP/{request.scope.get('http_version', '1.1')} "
        f"method={request.method} uri={request_uri(request)}"
    )
    return await call_next(request)
