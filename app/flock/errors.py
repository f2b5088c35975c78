"""
API error types.

Services raise these; the app factory turns them into
`{"error": {"code": ..., "message": ...}}` JSON responses.
"""
from __future__ import annotations


class ApiError(Exception):
    code = "INTERNAL_SERVER_ERROR"
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class BadRequest(ApiError):
    code = "BAD_REQUEST"
    status = 400


class Unauthorized(ApiError):
    code = "UNAUTHORIZED"
    status = 401


class Forbidden(ApiError):
    code = "FORBIDDEN"
    status = 403


class NotFound(ApiError):
    code = "NOT_FOUND"
    status = 404


class Conflict(ApiError):
    code = "CONFLICT"
    status = 409


class PreconditionFailed(ApiError):
    code = "PRECONDITION_FAILED"
    status = 412


def not_found(resource: str, details: str | None = None) -> NotFound:
    if details:
        return NotFound(f"{resource} not found: {details}")
    return NotFound(f"{resource} not found")


def bad_request(message: str) -> BadRequest:
    return BadRequest(message)


def forbidden(action: str, resource: str, reason: str | None = None) -> Forbidden:
    if reason:
        return Forbidden(f"Cannot {action} {resource}: {reason}")
    return Forbidden(f"Cannot {action} {resource}")


def conflict(resource: str, details: str | None = None) -> Conflict:
    if details:
        return Conflict(f"{resource} conflict: {details}")
    return Conflict(f"{resource} already exists")


def unauthorized(message: str = "Authentication required") -> Unauthorized:
    return Unauthorized(message)


def raise_if_errors(errors: list[str]) -> None:
    """Raise a single BadRequest for a validator's error list."""
    if errors:
        raise BadRequest("; ".join(errors))
