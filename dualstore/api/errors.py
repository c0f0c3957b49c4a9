import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import DualstoreError

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    """Все ошибки API возвращаются в одной форме: {"error": "..."}."""
    return JSONResponse(status_code=status_code, content={"error": message})


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def install_error_handlers(app: FastAPI) -> None:
    """Регистрирует обработчики, приводящие ошибки к JSON с полем error."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.exception_handler(DualstoreError)
    async def dualstore_exception_handler(request: Request, exc: DualstoreError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc}")
        return error_response(exc.status_code, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Необработанная ошибка {request.method} {request.url.path}: {exc}", exc_info=exc)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Unexpected error")
