"""Tests for the admin review queue."""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import ADMIN_ID, CHECKING_ID, T0, FakeLedgerGateway
from cayman_bank import models, review
from cayman_bank.core.errors import (
    BackendUnavailableError,
    BusinessRejectionError,
    InvalidStateError,
    NotFoundError,
)


class FailingAfterWriteGateway(FakeLedgerGateway):
    """Writes the ledger entry, then the call blows up."""

    def update_account_balance(self, account_id, amount_change, description, admin_user_id=None):
        super().update_account_balance(account_id, amount_change, description, admin_user_id)
        raise BackendUnavailableError("connection reset")


def _transactions(db):
    return db.query(models.Transaction).all()


def _balance(db, account_id: str = CHECKING_ID) -> Decimal:
    return Decimal(db.query(models.Account).filter(models.Account.id == account_id).one().balance)


class TestListPending:
    """Tests for review.list_pending."""

    def test_only_actionable_newest_first(self, seeded, make_pending) -> None:
        older = make_pending(created_at=T0)
        newer = make_pending(status=models.STATUS_REQUIRES_OTP, created_at=T0 + timedelta(hours=1))
        make_pending(status=models.STATUS_APPROVED)
        make_pending(status=models.STATUS_REJECTED)

        rows = review.list_pending(seeded)
        assert [r.id for r in rows] == [newer.id, older.id]

    def test_empty(self, seeded) -> None:
        assert review.list_pending(seeded) == []


class TestApprove:
    """Tests for review.approve."""

    def test_approve_applies_amount_once(self, seeded, gateway, make_pending) -> None:
        row = make_pending(amount="-5000.00")

        approved = review.approve(seeded, row.id, admin_id=ADMIN_ID, gateway=gateway)

        assert approved.status == models.STATUS_APPROVED
        assert approved.reviewed_by == ADMIN_ID
        assert approved.reviewed_at is not None
        txs = _transactions(seeded)
        assert len(txs) == 1
        assert Decimal(txs[0].amount) == Decimal("-5000.00")
        assert txs[0].description.endswith("(Admin Approved)")
        assert _balance(seeded) == Decimal("5000.00")

        (call,) = gateway.calls_to("update_account_balance")
        assert call[0] == CHECKING_ID
        assert call[3] == ADMIN_ID

    def test_approve_requires_otp_row(self, seeded, gateway, make_pending) -> None:
        """Abandoned OTP challenges can be resolved by an admin."""
        row = make_pending(status=models.STATUS_REQUIRES_OTP, amount="-200.00")
        assert review.approve(seeded, row.id, admin_id=ADMIN_ID, gateway=gateway).status == models.STATUS_APPROVED

    def test_double_approve_refused(self, seeded, gateway, make_pending) -> None:
        row = make_pending()
        review.approve(seeded, row.id, admin_id=ADMIN_ID, gateway=gateway)

        with pytest.raises(InvalidStateError):
            review.approve(seeded, row.id, admin_id=ADMIN_ID, gateway=gateway)
        assert len(_transactions(seeded)) == 1

    def test_unknown_id(self, seeded, gateway) -> None:
        with pytest.raises(NotFoundError):
            review.approve(seeded, "missing", admin_id=ADMIN_ID, gateway=gateway)

    def test_balance_failure_leaves_row_actionable(self, seeded, gateway, make_pending) -> None:
        row = make_pending()
        gateway.fail_accounts.add(CHECKING_ID)

        with pytest.raises(BusinessRejectionError):
            review.approve(seeded, row.id, admin_id=ADMIN_ID, gateway=gateway)

        seeded.refresh(row)
        assert row.status == models.STATUS_PENDING
        assert row.reviewed_by is None
        assert _transactions(seeded) == []

    def test_failure_after_write_rolls_back(self, seeded, clock, make_pending) -> None:
        row = make_pending(amount="-5000.00")
        gateway = FailingAfterWriteGateway(seeded, clock=clock)

        with pytest.raises(BackendUnavailableError):
            review.approve(seeded, row.id, admin_id=ADMIN_ID, gateway=gateway)

        seeded.refresh(row)
        assert row.status == models.STATUS_PENDING
        assert _transactions(seeded) == []
        assert _balance(seeded) == Decimal("10000.00")

    def test_approval_description_without_description(self, make_pending) -> None:
        row = make_pending(description=None)
        assert review.approval_description(row) == "withdrawal (Admin Approved)"


class TestReject:
    """Tests for review.reject."""

    def test_reject_never_touches_balances(self, seeded, gateway, make_pending) -> None:
        row = make_pending()

        rejected = review.reject(seeded, row.id, admin_id=ADMIN_ID, reason="Suspicious destination")

        assert rejected.status == models.STATUS_REJECTED
        assert rejected.rejection_reason == "Suspicious destination"
        assert rejected.reviewed_by == ADMIN_ID
        assert gateway.calls == []
        assert _transactions(seeded) == []
        assert _balance(seeded) == Decimal("10000.00")

    def test_blank_reason_gets_default(self, seeded, make_pending) -> None:
        row = make_pending()
        assert review.reject(seeded, row.id, admin_id=ADMIN_ID, reason="  ").rejection_reason == "Rejected by admin"

    def test_reject_after_approve_refused(self, seeded, gateway, make_pending) -> None:
        row = make_pending()
        review.approve(seeded, row.id, admin_id=ADMIN_ID, gateway=gateway)
        with pytest.raises(InvalidStateError):
            review.reject(seeded, row.id, admin_id=ADMIN_ID, reason="late")
