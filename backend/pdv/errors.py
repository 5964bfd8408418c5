# Overview: Error taxonomy shared by services, routes and the CLI.

from __future__ import annotations

from typing import Any


class PDVError(Exception):
    """
    Base class for every business/state error raised by the services.

    Routes map these to JSON bodies of the form
    {"error": message, "code": code, "details": {...}} with `http_status`.
    Anything that is not a PDVError is an internal error (500).
    """

    code = "error"
    http_status = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# =============================================================================
# INPUT
# =============================================================================

class ValidationError(PDVError, ValueError):
    """400-level input problem. Raised before anything is written."""

    code = "validation_error"


class ReasonRequired(ValidationError):
    """A reversal or manual movement was requested without a reason."""

    code = "reason_required"


class NotFound(PDVError):
    code = "not_found"
    http_status = 404


# =============================================================================
# ACCESS
# =============================================================================

class PermissionDenied(PDVError):
    code = "permission_denied"
    http_status = 403


class StoreAccessDenied(PermissionDenied):
    code = "store_access_denied"


# =============================================================================
# BUSINESS RULES (whole operation aborted, nothing written)
# =============================================================================

class InsufficientCredit(PDVError):
    code = "insufficient_credit"
    http_status = 422


class InsufficientStock(PDVError):
    code = "insufficient_stock"
    http_status = 422


# =============================================================================
# STATE GUARDS (idempotency of one-shot transitions)
# =============================================================================

class StateConflict(PDVError):
    code = "state_conflict"
    http_status = 409


class AlreadyOpen(StateConflict):
    code = "already_open"


class AlreadyClosed(StateConflict):
    code = "already_closed"


class NotOpen(StateConflict):
    code = "not_open"


class AlreadyCancelled(StateConflict):
    code = "already_cancelled"


class IdempotencyConflict(StateConflict):
    """An idempotency key was reused for a different request."""

    code = "idempotency_conflict"


class ConcurrencyConflict(StateConflict):
    """Lock contention that did not clear within the retry budget."""

    code = "concurrency_conflict"


# =============================================================================
# INTERNAL
# =============================================================================

class CompensationFailed(PDVError):
    """
    A failed write could not be rolled back.

    The database may hold a partial effect; the failure is logged at CRITICAL
    with enough context for manual reconciliation.
    """

    code = "compensation_failed"
    http_status = 500
