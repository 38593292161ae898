# cayman_bank/decisions.py
"""Risk decisions returned by the ledger backend.

The backend procedures answer with JSON (sometimes as a string, sometimes
already decoded). Payloads are parsed exactly once, here, into small frozen
dataclasses so callers branch on types instead of poking at dicts.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from cayman_bank.core.errors import BackendUnavailableError

DEFAULT_OTP_TTL_SECONDS = 600


@dataclass(frozen=True)
class Completed:
    """Funds moved immediately."""

    transaction_id: Optional[str]


@dataclass(frozen=True)
class RequiresOtp:
    """A pending row was created and holds a one-time code."""

    pending_id: str
    code: str
    expires_in_seconds: int = DEFAULT_OTP_TTL_SECONDS


@dataclass(frozen=True)
class PendingApproval:
    """A pending row was created and waits for an administrator."""

    pending_id: str


@dataclass(frozen=True)
class Rejected:
    reason: str


Decision = Union[Completed, RequiresOtp, PendingApproval, Rejected]


@dataclass(frozen=True)
class BalanceResult:
    success: bool
    new_balance: Optional[Decimal] = None
    error: Optional[str] = None


def _load(payload: Any) -> dict:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise BackendUnavailableError("Malformed response from the ledger backend") from e
    if not isinstance(payload, dict):
        raise BackendUnavailableError("Unexpected response from the ledger backend")
    return payload


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _reason(data: dict, default: str) -> str:
    return str(data.get("message") or data.get("error") or default)


def parse_decision(payload: Any, *, default_ttl: int = DEFAULT_OTP_TTL_SECONDS) -> Decision:
    """Parse a create_pending_transaction payload into a Decision."""
    data = _load(payload)
    status = str(data.get("status") or "").strip().lower()

    if status == "completed":
        return Completed(transaction_id=_opt_str(data.get("transaction_id")))

    if status == "requires_otp":
        pending_id = _opt_str(data.get("pending_id"))
        code = _opt_str(data.get("otp_code"))
        if not pending_id or not code:
            raise BackendUnavailableError("OTP decision without pending id or code")
        ttl = data.get("expires_in_seconds")
        try:
            ttl = int(ttl) if ttl is not None else default_ttl
        except (TypeError, ValueError):
            ttl = default_ttl
        return RequiresOtp(pending_id=pending_id, code=code, expires_in_seconds=ttl)

    if status == "pending_approval":
        pending_id = _opt_str(data.get("pending_id"))
        if not pending_id:
            raise BackendUnavailableError("Approval decision without pending id")
        return PendingApproval(pending_id=pending_id)

    return Rejected(reason=_reason(data, "Transaction failed"))


def parse_verification(payload: Any) -> Union[Completed, Rejected]:
    """Parse a verify_otp_and_complete payload."""
    data = _load(payload)
    if str(data.get("status") or "").strip().lower() == "completed":
        return Completed(transaction_id=_opt_str(data.get("transaction_id")))
    return Rejected(reason=_reason(data, "OTP verification failed"))


def parse_balance_result(payload: Any) -> BalanceResult:
    """Parse an update_account_balance payload."""
    data = _load(payload)
    if not data.get("success"):
        return BalanceResult(success=False, error=_reason(data, "Update failed"))

    new_balance = data.get("new_balance")
    if new_balance is not None:
        try:
            new_balance = Decimal(str(new_balance))
        except InvalidOperation:
            new_balance = None
    return BalanceResult(success=True, new_balance=new_balance)
