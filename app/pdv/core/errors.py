from decimal import Decimal
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError

from app.pdv.core.error_catalog import AppError, ErrorCatalog, ErrorKind


_HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


def _set_error_context(request: Request, code: str, exc: Exception | None = None) -> None:
    request.state.error_code = code
    if exc is not None:
        request.state.error_class = exc.__class__.__name__


def _is_lock_timeout(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        message = str(exc).lower()
        return any(
            token in message
            for token in (
                "lock timeout",
                "deadlock detected",
                "database is locked",
                "could not obtain lock",
            )
        )
    return False


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def _http_error_code(status_code: int) -> str:
    return _HTTP_STATUS_CODES.get(status_code, "HTTP_ERROR")


def _json_safe(value):
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_json_safe(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_json_safe(item) for item in value)
    return value


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
            }
        )
    return {"errors": errors}


def _payload(request: Request, *, code: str, kind: str, message: str, details: object) -> dict:
    return {
        "code": code,
        "kind": kind,
        "message": message,
        "details": _json_safe(details),
        "trace_id": _trace_id(request),
    }


def error_response(code: str, message: str, details: object, trace_id: str, status_code: int, kind: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "code": code,
            "kind": kind,
            "message": message,
            "details": _json_safe(details),
            "trace_id": trace_id,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        _set_error_context(request, exc.error.code, exc)
        payload = _payload(
            request,
            code=exc.error.code,
            kind=exc.error.kind,
            message=exc.error.message,
            details=exc.details,
        )
        return JSONResponse(status_code=exc.error.status_code, content=payload)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        code = _http_error_code(exc.status_code)
        _set_error_context(request, code, exc)
        detail = exc.detail
        payload = _payload(
            request,
            code=code,
            kind=ErrorKind.VALIDATION,
            message=str(detail) if detail is not None else "HTTP error",
            details=None,
        )
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        _set_error_context(request, ErrorCatalog.VALIDATION_ERROR.code, exc)
        payload = _payload(
            request,
            code=ErrorCatalog.VALIDATION_ERROR.code,
            kind=ErrorCatalog.VALIDATION_ERROR.kind,
            message=ErrorCatalog.VALIDATION_ERROR.message,
            details=_validation_error_details(exc),
        )
        return JSONResponse(status_code=ErrorCatalog.VALIDATION_ERROR.status_code, content=payload)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        error = ErrorCatalog.LOCK_TIMEOUT if _is_lock_timeout(exc) else ErrorCatalog.INTERNAL_ERROR
        _set_error_context(request, error.code, exc)
        payload = _payload(
            request,
            code=error.code,
            kind=error.kind,
            message=error.message,
            details={"type": exc.__class__.__name__},
        )
        return JSONResponse(status_code=error.status_code, content=payload)
