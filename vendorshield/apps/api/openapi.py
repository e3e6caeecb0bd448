from __future__ import annotations

from typing import Any

from vendorshield.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _error_response(description: str, *, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message, details=details)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    404: _error_response(
        "Not found",
        code="SNAPSHOT_NOT_FOUND",
        message="coverage snapshot unavailable for vendor v_123: no coverage snapshot on file",
    ),
    409: _error_response(
        "Conflict",
        code="ALERT_TRANSITION_INVALID",
        message="alert a_123 cannot move from resolved to in_review",
    ),
    422: _error_response(
        "Validation error",
        code="RULE_VALIDATION_ERROR",
        message="rules[0]: condition gte is not valid for coverage rules",
    ),
    500: _error_response("Internal error", code="INTERNAL_ERROR", message="Internal server error"),
}
