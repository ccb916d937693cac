"""JSON error bodies: ``{"error": <message>, "code": <ERR_*>, "details"?: {...}}``.

Views return ``api_error(E.VALIDATION_REQUIRED, "roleId is required")``;
raised domain exceptions reach ``domain_error_response`` through the
handlers each blueprint registers.
"""

from __future__ import annotations

from flask import jsonify

from roleclarity.core.exceptions import ClarityError, ConflictError, NotFoundError, ValidationError


class E:
    """Error codes outside the clarity taxonomy; clarity codes live on each ``ClarityError`` subclass."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT = "ERR_CONFLICT"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` for a view to return; status defaults by code, else 400."""
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)


def domain_error_response(exc: Exception):
    if isinstance(exc, ClarityError):
        # clarity subtypes that also inherit a generic base keep their own code
        return api_error(exc.code, str(exc), status=exc.status,
                         details={**exc.details, "retryable": exc.retryable})
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, str(exc))
    if isinstance(exc, ValidationError):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)
    if isinstance(exc, ConflictError):
        return api_error(E.CONFLICT, str(exc))
    raise exc
