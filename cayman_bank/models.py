# cayman_bank/models.py
from __future__ import annotations

from sqlalchemy import (
    Column,
    String,
    Numeric,
    DateTime,
    Boolean,
    Text,
    Index,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

# pending transaction statuses
STATUS_PENDING = "pending"
STATUS_REQUIRES_OTP = "requires_otp"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

ACTIONABLE_STATUSES = (STATUS_PENDING, STATUS_REQUIRES_OTP)


class Profile(Base):
    __tablename__ = "profiles"

    # identity-provider user id (uuid text)
    id = Column(String(36), primary_key=True)
    full_name = Column(String(128), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    address = Column(Text, nullable=True)

    is_admin = Column(Boolean, nullable=False, default=False)
    is_frozen = Column(Boolean, nullable=False, default=False)
    frozen_at = Column(DateTime(timezone=True), nullable=True)
    frozen_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)


class Account(Base):
    """Balance is written only by the update_account_balance procedure."""

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), index=True, nullable=False)
    account_number = Column(String(32), nullable=False, unique=True)
    account_type = Column(String(16), nullable=False, default="checking")  # checking / savings
    balance = Column(Numeric(14, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)


class Transaction(Base):
    """Append-only ledger entry. Signed amount: credit > 0, debit < 0."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True)
    account_id = Column(String(36), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    transaction_type = Column(String(32), nullable=False)  # deposit / withdrawal / transfer / admin_adjustment ...
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        Index("ix_transactions_account_created", "account_id", "created_at"),
    )


class PendingTransaction(Base):
    __tablename__ = "pending_transactions"

    id = Column(String(36), primary_key=True)
    account_id = Column(String(36), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    transaction_type = Column(String(32), nullable=False)
    description = Column(Text, nullable=True)

    # pending / requires_otp / approved / rejected
    status = Column(String(16), nullable=False, default=STATUS_PENDING)

    otp_code = Column(String(6), nullable=True)
    otp_expires_at = Column(DateTime(timezone=True), nullable=True)

    # review trail
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        Index("ix_pending_transactions_status", "status"),
        Index("ix_pending_transactions_account", "account_id"),
    )
