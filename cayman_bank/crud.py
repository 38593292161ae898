# cayman_bank/crud.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from cayman_bank import models
from cayman_bank.core.errors import (
    BusinessRejectionError,
    FormValidationError,
    NotFoundError,
)
from cayman_bank.i18n import t
from cayman_bank.ledger import LedgerGateway, parse_amount, quantize_money, to_decimal

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -------- Profiles --------

def get_profile(db: Session, user_id: str) -> Optional[models.Profile]:
    return db.query(models.Profile).filter(models.Profile.id == user_id).first()


def is_frozen(db: Session, user_id: str) -> bool:
    prof = get_profile(db, user_id)
    return bool(prof and prof.is_frozen)


def set_frozen(db: Session, user_id: str, *, frozen: bool, reason: Optional[str] = None) -> models.Profile:
    prof = get_profile(db, user_id)
    if not prof:
        raise NotFoundError("User not found")

    prof.is_frozen = frozen
    prof.frozen_at = _utcnow() if frozen else None
    prof.frozen_reason = (reason or t("en", "ADMIN_FROZEN_REASON")) if frozen else None
    db.add(prof)
    db.commit()
    db.refresh(prof)
    logger.info("profile %s frozen=%s", user_id, frozen)
    return prof


# -------- Accounts --------

def list_accounts(db: Session, user_id: str) -> List[models.Account]:
    return (
        db.query(models.Account)
        .filter(models.Account.user_id == user_id)
        .order_by(models.Account.created_at.asc())
        .all()
    )


def get_account(db: Session, account_id: str) -> models.Account:
    acc = db.query(models.Account).filter(models.Account.id == account_id).first()
    if not acc:
        raise NotFoundError(t("en", "ERR_ACCOUNT_NOT_FOUND"))
    return acc


def get_owned_account(db: Session, user_id: str, account_id: str, lang: str = "en") -> models.Account:
    acc = (
        db.query(models.Account)
        .filter(models.Account.id == account_id, models.Account.user_id == user_id)
        .first()
    )
    if not acc:
        raise NotFoundError(t(lang, "ERR_ACCOUNT_NOT_FOUND"))
    return acc


def _require_amount(raw, lang: str) -> Decimal:
    amount = parse_amount(raw)
    if amount is None:
        raise FormValidationError(t(lang, "ERR_AMOUNT_INVALID"))
    return amount


def _apply(gateway: LedgerGateway, account_id: str, change: Decimal, description: str, admin_id: Optional[str] = None) -> Decimal | None:
    result = gateway.apply_balance_change(account_id, change, description, admin_user_id=admin_id)
    if not result.success:
        raise BusinessRejectionError(result.error or "Update failed")
    return result.new_balance


# -------- Money movement (via the balance procedure) --------

def deposit(
    gateway: LedgerGateway,
    account: models.Account,
    amount,
    *,
    description: str = "",
    lang: str = "en",
) -> Decimal | None:
    amt = _require_amount(amount, lang)
    desc_ = description.strip() or t(lang, "DEFAULT_DEPOSIT_DESCRIPTION")
    new_balance = _apply(gateway, account.id, amt, desc_)
    logger.info("deposit account=%s amount=%s", account.id, amt)
    return new_balance


def transfer(
    gateway: LedgerGateway,
    source: models.Account,
    target: models.Account,
    amount,
    *,
    description: str = "",
    lang: str = "en",
) -> Decimal:
    """Move money between two of the user's own accounts: debit, then credit.

    The balance check against ``source.balance`` mirrors what the user sees;
    the procedure still has the final say on the debit. A failed credit leg
    is compensated by crediting the source back.
    """
    if source.id == target.id:
        raise FormValidationError(t(lang, "ERR_SAME_ACCOUNT"))
    amt = _require_amount(amount, lang)
    if amt > to_decimal(source.balance or 0):
        raise BusinessRejectionError(t(lang, "ERR_INSUFFICIENT_FUNDS"))

    _apply(
        gateway,
        source.id,
        -amt,
        description.strip() or t(lang, "TRANSFER_TO", account_number=target.account_number),
    )
    try:
        _apply(
            gateway,
            target.id,
            amt,
            description.strip() or t(lang, "TRANSFER_FROM", account_number=source.account_number),
        )
    except Exception:
        logger.exception("transfer credit leg failed source=%s target=%s amount=%s", source.id, target.id, amt)
        try:
            _apply(
                gateway,
                source.id,
                amt,
                t(lang, "TRANSFER_REVERSAL", account_number=target.account_number),
            )
        except Exception:
            # debit stays on the source; needs manual reconciliation
            logger.error(
                "transfer reversal failed source=%s target=%s amount=%s debited_not_credited=true",
                source.id,
                target.id,
                amt,
                exc_info=True,
            )
            raise
        raise

    logger.info("transfer source=%s target=%s amount=%s", source.id, target.id, amt)
    return amt


ADJUST_OPERATIONS = ("add", "subtract", "set")


def admin_adjust_balance(
    gateway: LedgerGateway,
    account: models.Account,
    *,
    operation: str,
    amount,
    admin_id: str,
    description: str = "",
) -> Decimal | None:
    """add / subtract / set, tagged with the admin id so limits are bypassed."""
    try:
        value = quantize_money(to_decimal(str(amount).strip()))
    except ArithmeticError:
        raise FormValidationError(t("en", "ERR_AMOUNT_INVALID"))
    if not value.is_finite():
        raise FormValidationError(t("en", "ERR_AMOUNT_INVALID"))

    if operation == "add":
        change = value
    elif operation == "subtract":
        change = -value
    elif operation == "set":
        change = value - to_decimal(account.balance or 0)
    else:
        raise FormValidationError(f"Invalid operation: {operation}")

    sign = "+" if change > 0 else ""
    desc_ = description.strip() or f"Transfer {sign}${abs(change)}"
    new_balance = _apply(gateway, account.id, change, desc_, admin_id=admin_id)
    logger.info("admin adjustment account=%s change=%s by=%s", account.id, change, admin_id)
    return new_balance


# -------- Statements --------

@dataclass(frozen=True)
class Statement:
    account: models.Account
    start: datetime
    end: datetime
    entries: List[models.Transaction]
    total_credits: Decimal
    total_debits: Decimal


def statement(
    db: Session,
    account: models.Account,
    *,
    period_days: int = 30,
    now: Optional[datetime] = None,
) -> Statement:
    if period_days <= 0:
        raise FormValidationError("period_days must be > 0")
    end = now or _utcnow()
    start = end - timedelta(days=period_days)

    entries = (
        db.query(models.Transaction)
        .filter(
            models.Transaction.account_id == account.id,
            models.Transaction.created_at >= start,
        )
        .order_by(desc(models.Transaction.created_at))
        .all()
    )
    credits = sum((to_decimal(e.amount) for e in entries if to_decimal(e.amount) > 0), Decimal("0"))
    debits = sum((-to_decimal(e.amount) for e in entries if to_decimal(e.amount) < 0), Decimal("0"))
    return Statement(
        account=account,
        start=start,
        end=end,
        entries=entries,
        total_credits=quantize_money(credits),
        total_debits=quantize_money(debits),
    )


def withdrawal_receipt(db: Session, user_id: str, transaction_id: str) -> tuple[models.Transaction, models.Account]:
    """The completed transaction behind a success page, only for its owner."""
    row = (
        db.query(models.Transaction, models.Account)
        .join(models.Account, models.Account.id == models.Transaction.account_id)
        .filter(models.Transaction.id == transaction_id, models.Account.user_id == user_id)
        .first()
    )
    if not row:
        raise NotFoundError("Transaction not found")
    return row[0], row[1]
