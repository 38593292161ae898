# cayman_bank/expiry.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from cayman_bank import models

logger = logging.getLogger(__name__)

ABANDONED_REASON = "otp_abandoned"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SweepResult:
    scanned: int
    expired: int


def expire_abandoned_challenges(
    db: Session,
    *,
    older_than_minutes: int,
    now: Optional[datetime] = None,
    reviewer: str = "system",
) -> SweepResult:
    """
    OTP challenges closed by the user stay requires_otp on the backend forever.
    Rows older than the cutoff are marked rejected with reason otp_abandoned.
    Idempotent: already resolved rows are never scanned again.
    """
    if older_than_minutes <= 0:
        raise ValueError("older_than_minutes must be > 0")

    now = now or _utcnow()
    cutoff = now - timedelta(minutes=older_than_minutes)

    open_challenges = db.query(models.PendingTransaction).filter(
        models.PendingTransaction.status == models.STATUS_REQUIRES_OTP
    )
    scanned = open_challenges.count()
    rows = open_challenges.filter(models.PendingTransaction.created_at < cutoff).all()

    expired = 0
    for row in rows:
        row.status = models.STATUS_REJECTED
        row.rejection_reason = ABANDONED_REASON
        row.reviewed_by = reviewer
        row.reviewed_at = now
        db.add(row)
        expired += 1

    db.commit()

    if expired:
        logger.info("expired %s abandoned otp challenges (cutoff=%s)", expired, cutoff.isoformat())
    return SweepResult(scanned=scanned, expired=expired)
