# cayman_bank/review.py
"""Administrator queue for withdrawals the backend held back."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from cayman_bank import models
from cayman_bank.core.errors import BusinessRejectionError, InvalidStateError, NotFoundError
from cayman_bank.i18n import t
from cayman_bank.ledger import LedgerGateway, SqlLedgerGateway

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def list_pending(db: Session) -> List[models.PendingTransaction]:
    """Every actionable row system-wide, newest first."""
    return (
        db.query(models.PendingTransaction)
        .filter(models.PendingTransaction.status.in_(models.ACTIONABLE_STATUSES))
        .order_by(desc(models.PendingTransaction.created_at))
        .all()
    )


def _get_actionable(db: Session, pending_id: str) -> models.PendingTransaction:
    row = (
        db.query(models.PendingTransaction)
        .filter(models.PendingTransaction.id == pending_id)
        .with_for_update()
        .first()
    )
    if not row:
        raise NotFoundError("Transaction not found")
    if row.status not in models.ACTIONABLE_STATUSES:
        raise InvalidStateError(f"Transaction already {row.status}")
    return row


def approval_description(row: models.PendingTransaction) -> str:
    return f"{row.description or row.transaction_type} {t('en', 'ADMIN_APPROVED_SUFFIX')}"


def approve(
    db: Session,
    pending_id: str,
    *,
    admin_id: str,
    gateway: Optional[LedgerGateway] = None,
) -> models.PendingTransaction:
    """Apply the held amount to the account and mark the row approved.

    The balance procedure and the status update run in one database
    transaction: if either fails, both are rolled back and the row stays
    actionable.
    """
    if gateway is None:
        gateway = SqlLedgerGateway(db, autocommit=False)

    try:
        row = _get_actionable(db, pending_id)
        result = gateway.apply_balance_change(
            row.account_id,
            row.amount,
            approval_description(row),
            admin_user_id=admin_id,
        )
        if not result.success:
            raise BusinessRejectionError(result.error or "Update failed")

        row.status = models.STATUS_APPROVED
        row.reviewed_by = admin_id
        row.reviewed_at = _utcnow()
        db.add(row)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(row)
    logger.info("pending approved id=%s account=%s amount=%s by=%s", row.id, row.account_id, row.amount, admin_id)
    return row


def reject(db: Session, pending_id: str, *, admin_id: str, reason: str) -> models.PendingTransaction:
    """Mark the row rejected. Balances are never touched."""
    try:
        row = _get_actionable(db, pending_id)
        row.status = models.STATUS_REJECTED
        row.rejection_reason = (reason or "").strip() or "Rejected by admin"
        row.reviewed_by = admin_id
        row.reviewed_at = _utcnow()
        db.add(row)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(row)
    logger.info("pending rejected id=%s by=%s reason=%s", row.id, admin_id, row.rejection_reason)
    return row
