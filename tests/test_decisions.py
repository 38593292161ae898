"""Tests for risk decision parsing."""

import json
from decimal import Decimal

import pytest

from cayman_bank.core.errors import BackendUnavailableError
from cayman_bank.decisions import (
    BalanceResult,
    Completed,
    PendingApproval,
    Rejected,
    RequiresOtp,
    parse_balance_result,
    parse_decision,
    parse_verification,
)


class TestParseDecision:
    """Tests for parse_decision."""

    def test_completed(self) -> None:
        decision = parse_decision({"status": "completed", "transaction_id": "tx1"})
        assert decision == Completed(transaction_id="tx1")

    def test_completed_without_transaction_id(self) -> None:
        """A missing transaction id is tolerated."""
        assert parse_decision({"status": "completed"}) == Completed(transaction_id=None)

    def test_requires_otp(self) -> None:
        decision = parse_decision(
            {"status": "requires_otp", "pending_id": "p2", "otp_code": "123456", "expires_in_seconds": 300}
        )
        assert decision == RequiresOtp(pending_id="p2", code="123456", expires_in_seconds=300)

    def test_requires_otp_default_ttl(self) -> None:
        """The configured default applies when the backend omits the TTL."""
        decision = parse_decision(
            {"status": "requires_otp", "pending_id": "p2", "otp_code": "123456"},
            default_ttl=120,
        )
        assert isinstance(decision, RequiresOtp)
        assert decision.expires_in_seconds == 120

    def test_requires_otp_without_code_is_backend_error(self) -> None:
        with pytest.raises(BackendUnavailableError):
            parse_decision({"status": "requires_otp", "pending_id": "p2"})

    def test_pending_approval(self) -> None:
        assert parse_decision({"status": "pending_approval", "pending_id": "p1"}) == PendingApproval("p1")

    def test_pending_approval_without_id_is_backend_error(self) -> None:
        with pytest.raises(BackendUnavailableError):
            parse_decision({"status": "pending_approval"})

    def test_rejected_uses_message(self) -> None:
        decision = parse_decision({"status": "error", "message": "Daily limit exceeded"})
        assert decision == Rejected(reason="Daily limit exceeded")

    def test_rejected_uses_error_field(self) -> None:
        assert parse_decision({"status": "failed", "error": "Insufficient funds"}).reason == "Insufficient funds"

    def test_unknown_status_gets_generic_reason(self) -> None:
        assert parse_decision({"status": "weird"}) == Rejected(reason="Transaction failed")

    def test_json_string_payload(self) -> None:
        """Procedures may hand back the JSON as text."""
        payload = json.dumps({"status": "pending_approval", "pending_id": "p1"})
        assert parse_decision(payload) == PendingApproval("p1")

    def test_malformed_json_is_backend_error(self) -> None:
        with pytest.raises(BackendUnavailableError):
            parse_decision("{not json")

    def test_non_object_payload_is_backend_error(self) -> None:
        with pytest.raises(BackendUnavailableError):
            parse_decision(None)

    def test_decisions_are_frozen(self) -> None:
        decision = Completed(transaction_id="tx1")
        with pytest.raises(AttributeError):
            decision.transaction_id = "tx2"  # type: ignore[misc]


class TestParseVerification:
    """Tests for parse_verification."""

    def test_completed(self) -> None:
        assert parse_verification({"status": "completed", "transaction_id": "tx2"}) == Completed("tx2")

    def test_failure(self) -> None:
        assert parse_verification({"status": "error", "message": "Invalid OTP code"}) == Rejected("Invalid OTP code")

    def test_failure_without_message(self) -> None:
        assert parse_verification({}).reason == "OTP verification failed"


class TestParseBalanceResult:
    """Tests for parse_balance_result."""

    def test_success(self) -> None:
        result = parse_balance_result({"success": True, "new_balance": "9500.00"})
        assert result == BalanceResult(success=True, new_balance=Decimal("9500.00"))

    def test_failure(self) -> None:
        result = parse_balance_result({"success": False, "error": "Insufficient funds"})
        assert not result.success
        assert result.error == "Insufficient funds"
