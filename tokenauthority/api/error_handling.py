from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tokenauthority.api.schemas import Envelope, ErrorBody
from tokenauthority.logging import get_logger
from tokenauthority.service.errors import ServiceError, TokenError

logger = get_logger(__name__)

_STATUS_TO_CODE = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    500: "server_error",
    503: "service_unavailable",
}

# One message for every rejected token so responses are not a validity oracle
GENERIC_TOKEN_MESSAGE = "invalid or expired token"


def _error_code_for_status(status_code: int) -> str:
    return _STATUS_TO_CODE.get(status_code, "server_error")


def _error_response(
    status_code: int,
    message: str,
    details: dict | list | None = None,
    code: str | None = None,
) -> JSONResponse:
    error_code = code or _error_code_for_status(status_code)
    error_body = ErrorBody(code=error_code, message=message, details=details)
    envelope = Envelope(status="error", error=error_body)
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    """Map token-authority errors onto the error envelope.

    Token failures become 401 with a fixed message; registry outages become 503.
    """

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        error_code = getattr(exc, "error_code", None)
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=error_code,
            reason=getattr(exc, "reason", None),
            message=exc.message,
        )
        if isinstance(exc, TokenError):
            return _error_response(exc.status_code, GENERIC_TOKEN_MESSAGE, code=error_code)
        return _error_response(exc.status_code, exc.message, exc.detail or None, code=error_code)


__all__ = ["register_exception_handlers", "GENERIC_TOKEN_MESSAGE"]
