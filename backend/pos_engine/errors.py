# backend/pos_engine/errors.py
"""
Typed failures for the commerce core.

Every failure a caller can act on is a CommerceError subclass. The class
tells the caller what to do about it:

- ValidationError      400  fix your input
- PreconditionFailed   409  not allowed right now (no shift, wrong state)
- InsufficientResource 422  not enough money / points
- NotFound             404  unknown id
- PersistenceFailure   503  store unavailable or conflict; safe to retry

All of them are raised before any mutation is committed.
"""
from __future__ import annotations

from flask import jsonify


class CommerceError(Exception):
    """Base class for expected business failures."""
    status_code = 400
    code = "commerce_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(CommerceError):
    """Malformed or missing input."""
    status_code = 400
    code = "validation_error"


class PreconditionFailed(CommerceError):
    """The operation is valid but not allowed in the current state."""
    status_code = 409
    code = "precondition_failed"


class InsufficientResource(CommerceError):
    status_code = 422
    code = "insufficient_resource"


class NotFound(CommerceError):
    status_code = 404
    code = "not_found"


class PersistenceFailure(CommerceError):
    """Backing store unavailable or the transaction lost a conflict."""
    status_code = 503
    code = "persistence_failure"


class InsufficientPayment(InsufficientResource):
    code = "insufficient_payment"


class InsufficientPoints(InsufficientResource):
    code = "insufficient_points"


class ShiftAlreadyOpen(PreconditionFailed):
    code = "shift_already_open"


class NoActiveShift(PreconditionFailed):
    code = "no_active_shift"


class InvalidTransferState(PreconditionFailed):
    code = "invalid_transfer_state"


class InvalidOrderState(PreconditionFailed):
    code = "invalid_order_state"


class BranchNotSelected(PreconditionFailed):
    code = "branch_not_selected"


def error_response(exc: CommerceError):
    """Flask (body, status) pair for a CommerceError."""
    return jsonify(exc.to_dict()), exc.status_code
