# cayman_bank/ledger.py
"""Transport to the managed backend's money-moving procedures.

The backend is the only writer of account balances and ledger transactions.
This module calls its stored procedures and hands back parsed results; it
never mutates balances itself.
"""
from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cayman_bank.core.errors import BackendUnavailableError
from cayman_bank.decisions import (
    BalanceResult,
    Completed,
    Decision,
    Rejected,
    parse_balance_result,
    parse_decision,
    parse_verification,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_decimal(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def quantize_money(x: Decimal) -> Decimal:
    return to_decimal(x).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(raw) -> Optional[Decimal]:
    """Positive amount rounded to cents, or None for anything else."""
    try:
        amount = Decimal(str(raw).strip())
        if not amount.is_finite() or amount <= 0:
            return None
        # quantize overflows past 28 significant digits
        amount = quantize_money(amount)
    except (ArithmeticError, ValueError):
        return None
    return amount if amount > 0 else None


class LedgerGateway:
    """Contract of the three backend procedures.

    Implementations return the raw payload; the ``evaluate`` / ``verify_otp`` /
    ``apply_balance_change`` wrappers parse it once into typed results.
    """

    def update_account_balance(
        self,
        account_id: str,
        amount_change: Decimal,
        description: str,
        admin_user_id: Optional[str] = None,
    ) -> Any:
        raise NotImplementedError

    def create_pending_transaction(
        self,
        account_id: str,
        amount: Decimal,
        transaction_type: str,
        description: str,
    ) -> Any:
        raise NotImplementedError

    def verify_otp_and_complete(self, pending_id: str, otp_code: str) -> Any:
        raise NotImplementedError

    # --------- typed wrappers ---------

    def evaluate(
        self,
        account_id: str,
        signed_amount: Decimal,
        transaction_type: str,
        description: str,
        *,
        default_ttl: int = 600,
    ) -> Decision:
        payload = self.create_pending_transaction(
            account_id, quantize_money(signed_amount), transaction_type, description
        )
        decision = parse_decision(payload, default_ttl=default_ttl)
        logger.info(
            "risk decision account=%s amount=%s type=%s -> %s",
            account_id,
            signed_amount,
            transaction_type,
            type(decision).__name__,
        )
        return decision

    def verify_otp(self, pending_id: str, otp_code: str) -> Completed | Rejected:
        return parse_verification(self.verify_otp_and_complete(pending_id, otp_code))

    def apply_balance_change(
        self,
        account_id: str,
        amount_change: Decimal,
        description: str,
        admin_user_id: Optional[str] = None,
    ) -> BalanceResult:
        payload = self.update_account_balance(
            account_id, quantize_money(amount_change), description, admin_user_id
        )
        result = parse_balance_result(payload)
        logger.info(
            "balance change account=%s change=%s admin=%s success=%s",
            account_id,
            amount_change,
            admin_user_id,
            result.success,
        )
        return result


class SqlLedgerGateway(LedgerGateway):
    """Calls the procedures as Postgres functions on the session's connection.

    With ``autocommit=True`` every call is committed right away, which is what
    a single user action wants. The review queue passes ``autocommit=False`` so
    the balance mutation and its own status update share one transaction.
    """

    def __init__(self, db: Session, *, autocommit: bool = True):
        self.db = db
        self.autocommit = autocommit

    def _call(self, sql: str, params: dict) -> Any:
        try:
            value = self.db.execute(text(sql), params).scalar()
            if self.autocommit:
                self.db.commit()
            return value
        except SQLAlchemyError as e:
            logger.exception("ledger procedure failed: %s", sql.split("(", 1)[0])
            self.db.rollback()
            raise BackendUnavailableError("The banking backend is unavailable. Please try again.") from e

    def update_account_balance(self, account_id, amount_change, description, admin_user_id=None):
        if admin_user_id:
            return self._call(
                "SELECT update_account_balance("
                "account_uuid => CAST(:account_uuid AS uuid), amount_change => :amount_change, "
                "transaction_description => :description, admin_user_id => CAST(:admin_user_id AS uuid))",
                {
                    "account_uuid": account_id,
                    "amount_change": amount_change,
                    "description": description,
                    "admin_user_id": admin_user_id,
                },
            )
        return self._call(
            "SELECT update_account_balance("
            "account_uuid => CAST(:account_uuid AS uuid), amount_change => :amount_change, "
            "transaction_description => :description)",
            {"account_uuid": account_id, "amount_change": amount_change, "description": description},
        )

    def create_pending_transaction(self, account_id, amount, transaction_type, description):
        return self._call(
            "SELECT create_pending_transaction("
            "p_account_id => CAST(:account_id AS uuid), p_amount => :amount, "
            "p_transaction_type => :transaction_type, p_description => :description)",
            {
                "account_id": account_id,
                "amount": amount,
                "transaction_type": transaction_type,
                "description": description,
            },
        )

    def verify_otp_and_complete(self, pending_id, otp_code):
        return self._call(
            "SELECT verify_otp_and_complete("
            "p_pending_id => CAST(:pending_id AS uuid), p_otp_code => :otp_code)",
            {"pending_id": pending_id, "otp_code": otp_code},
        )
