"""JSON error responses.

Rule violations become 400 and missing rows 404, both as
``{"detail": ..., "code": ...}`` so clients can branch on ``code``.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fiquest.exceptions import DomainError, NotFoundError

logger = structlog.get_logger()

_CODED_ERRORS: dict[type[Exception], int] = {
    DomainError: 400,
    NotFoundError: 404,
}


def _coded(exc: DomainError | NotFoundError) -> dict[str, str]:
    return {"detail": exc.message, "code": exc.code}


def setup_error_handlers(app: FastAPI) -> None:
    async def coded_error_handler(request: Request, exc: Exception) -> JSONResponse:
        status = next(code for cls, code in _CODED_ERRORS.items() if isinstance(exc, cls))
        logger.info("request_rejected", path=request.url.path, status=status, code=getattr(exc, "code", None))
        return JSONResponse(status_code=status, content=_coded(exc))  # type: ignore[arg-type]

    for exc_class in _CODED_ERRORS:
        app.add_exception_handler(exc_class, coded_error_handler)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": "Validation error", "errors": exc.errors()})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", path=request.url.path, method=request.method, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
