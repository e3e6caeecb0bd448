from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vendorshield.apps.api.response import error_response
from vendorshield.core.errors import (
    AlertRuleValidationError,
    AlertTransitionError,
    ConcurrencyConflict,
    DatabaseError,
    DataError,
    RuleValidationError,
    SnapshotLoadError,
    VendorShieldError,
)


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}

# Most specific class first; the first isinstance match wins.
_DOMAIN_ERRORS: tuple[tuple[type[VendorShieldError], int, str], ...] = (
    (RuleValidationError, 422, "RULE_VALIDATION_ERROR"),
    (AlertRuleValidationError, 422, "ALERT_RULE_VALIDATION_ERROR"),
    (SnapshotLoadError, 404, "SNAPSHOT_NOT_FOUND"),
    (DataError, 422, "DATA_ERROR"),
    (AlertTransitionError, 409, "ALERT_TRANSITION_INVALID"),
    (ConcurrencyConflict, 409, "CONFLICT"),
    (DatabaseError, 500, "DB_ERROR"),
)


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Routes raise HTTPException(detail={"code": ..., "message": ...}); plain strings also work.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(content=payload, status_code=422)


def _classify_domain_error(exc: VendorShieldError) -> tuple[int, str]:
    for error_type, status_code, code in _DOMAIN_ERRORS:
        if isinstance(exc, error_type):
            return status_code, code
    return 500, "INTERNAL_ERROR"


async def domain_exception_handler(request: Request, exc: VendorShieldError) -> JSONResponse:
    status_code, code = _classify_domain_error(exc)
    if status_code >= 500:
        logger.error("unmapped domain error path=%s: %s", request.url.path, exc)
        return JSONResponse(
            content=error_response(request=request, code=code, message="Internal server error"),
            status_code=status_code,
        )
    payload = error_response(request=request, code=code, message=str(exc))
    return JSONResponse(content=payload, status_code=status_code)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Log the traceback server-side only; clients get a stable envelope.
    logger.exception("unhandled error path=%s", request.url.path, exc_info=exc)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
