from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError

from app.stockbox.core.error_catalog import AppError, ErrorCatalog, ErrorDefinition
from app.stockbox.core.metrics import metrics


_HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
}

_LOCK_TIMEOUT_TOKENS = (
    "lock timeout",
    "deadlock detected",
    "database is locked",
    "could not obtain lock",
)


def _set_error_context(request: Request, code: str, exc: Exception | None = None) -> None:
    request.state.error_code = code
    if exc is not None:
        request.state.error_class = exc.__class__.__name__


def is_lock_timeout(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        message = str(exc).lower()
        return any(token in message for token in _LOCK_TIMEOUT_TOKENS)
    return False


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def _record_idempotency_failure(request: Request, status_code: int, response_body: dict) -> None:
    context = getattr(request.state, "idempotency", None)
    if context is None:
        return
    context.record_failure(status_code=status_code, response_body=response_body)


def _json_safe(value):
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def _validation_error_details(exc: RequestValidationError) -> dict:
    errors = []
    for error in exc.errors():
        loc = list(error.get("loc", []))
        field = ".".join(str(item) for item in loc if item not in {"body", "query", "path", "header"}) or None
        errors.append(
            {
                "field": field,
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type", "validation_error"),
                "loc": loc,
                "input": _json_safe(error.get("input")),
            }
        )
    return {"errors": errors}


def _catalog_payload(request: Request, error: ErrorDefinition, details: object) -> dict:
    return {
        "code": error.code,
        "message": error.message,
        "details": details,
        "trace_id": _trace_id(request),
    }


def error_response(code: str, message: str, details: object, trace_id: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "code": code,
            "message": message,
            "details": details,
            "trace_id": trace_id,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        _set_error_context(request, exc.error.code, exc)
        payload = _catalog_payload(request, exc.error, exc.details)
        _record_idempotency_failure(request, exc.error.status_code, payload)
        return JSONResponse(status_code=exc.error.status_code, content=payload)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        code = _HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
        detail = exc.detail
        payload = {
            "code": code,
            "message": str(detail) if isinstance(detail, str) else "HTTP error",
            "details": None if isinstance(detail, str) else _json_safe(detail),
            "trace_id": _trace_id(request),
        }
        _set_error_context(request, code, exc)
        _record_idempotency_failure(request, exc.status_code, payload)
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        _set_error_context(request, ErrorCatalog.VALIDATION_ERROR.code, exc)
        payload = _catalog_payload(request, ErrorCatalog.VALIDATION_ERROR, _validation_error_details(exc))
        _record_idempotency_failure(request, ErrorCatalog.VALIDATION_ERROR.status_code, payload)
        return JSONResponse(status_code=ErrorCatalog.VALIDATION_ERROR.status_code, content=payload)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        error = ErrorCatalog.INTERNAL_ERROR
        if is_lock_timeout(exc):
            error = ErrorCatalog.LOCK_TIMEOUT
            metrics.increment_lock_wait_timeout()
        _set_error_context(request, error.code, exc)
        payload = _catalog_payload(request, error, {"type": exc.__class__.__name__})
        _record_idempotency_failure(request, error.status_code, payload)
        return JSONResponse(status_code=error.status_code, content=payload)
