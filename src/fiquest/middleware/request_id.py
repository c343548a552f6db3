"""X-Request-Id propagation and per-request log context."""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-Id"
_MAX_REQUEST_ID_LENGTH = 128


def _incoming_request_id(request: Request) -> str | None:
    value = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if not value or len(value) > _MAX_REQUEST_ID_LENGTH or not value.isprintable():
        return None
    return value


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Reuse the gateway's request id (or mint one) and bind it with the caller's user id.

    Detached tasks spawned during the request inherit this context, so their
    log lines carry the same ``request_id``.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_request_id(request) or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            user_id=request.headers.get("X-User-Id"),
        )
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
