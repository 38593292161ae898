# cayman_bank/core/errors.py
"""Exception hierarchy for the banking service.

Every error carries a single human readable message (what the user sees) and
the HTTP status the API layer answers with.
"""
from __future__ import annotations

from http import HTTPStatus


class BankingError(Exception):
    """Base exception for all banking service errors."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.message, "code": self.__class__.__name__}


class FormValidationError(BankingError):
    """Local input validation failed; nothing was sent to the backend."""

    status_code = HTTPStatus.UNPROCESSABLE_ENTITY


class GateRejectedError(BankingError):
    """A VAT/COT step-gate code did not match."""

    status_code = HTTPStatus.BAD_REQUEST


class BusinessRejectionError(BankingError):
    """The backend refused the operation (rejected decision, bad OTP, frozen account)."""

    status_code = HTTPStatus.CONFLICT


class BackendUnavailableError(BankingError):
    """The remote procedure call itself failed (network, auth, malformed payload)."""

    status_code = HTTPStatus.SERVICE_UNAVAILABLE


class InvalidTransitionError(BankingError):
    """Raised when a withdrawal flow step is attempted from the wrong state."""

    status_code = HTTPStatus.CONFLICT


class FlowBusyError(InvalidTransitionError):
    """A remote call is already in flight for this flow."""


class InvalidStateError(BankingError):
    """Raised when an entity is in a state that does not allow the operation."""

    status_code = HTTPStatus.CONFLICT


class NotFoundError(BankingError):
    status_code = HTTPStatus.NOT_FOUND


class PermissionDeniedError(BankingError):
    status_code = HTTPStatus.FORBIDDEN


class ConfigurationError(BankingError):
    """Raised when configuration is invalid or missing."""
