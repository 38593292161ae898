# cayman_bank/schemas.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_number: str
    account_type: str
    balance: Decimal
    created_at: Optional[datetime] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    amount: Decimal
    transaction_type: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class PendingTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    amount: Decimal
    transaction_type: str
    description: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: Optional[str] = None
    is_frozen: bool = False
    frozen_at: Optional[datetime] = None
    frozen_reason: Optional[str] = None


# ----- requests -----

class WithdrawalForm(BaseModel):
    # amounts arrive as typed text; parsed and validated by the flow
    account_id: str = ""
    amount: str = ""
    description: str = ""
    bank_name: str = ""
    bank_address: str = ""
    routing_number: str = ""
    destination_account_number: str = ""


class CodeIn(BaseModel):
    code: str = ""


class DepositIn(BaseModel):
    amount: str
    description: str = ""


class TransferIn(BaseModel):
    from_account_id: str
    to_account_id: str
    amount: str
    description: str = ""


class RejectIn(BaseModel):
    reason: str = "Rejected by admin"


class FreezeIn(BaseModel):
    frozen: bool = True
    reason: Optional[str] = None


class AdjustIn(BaseModel):
    operation: str = Field(pattern="^(add|subtract|set)$")
    amount: str
    description: str = ""


# ----- responses -----

class BalanceOut(BaseModel):
    ok: bool = True
    new_balance: Optional[Decimal] = None


class StatementOut(BaseModel):
    account: AccountOut
    start: datetime
    end: datetime
    total_credits: Decimal
    total_debits: Decimal
    entries: List[TransactionOut]


class ReceiptOut(BaseModel):
    transaction: TransactionOut
    account_number: str
    account_type: str
    balance: Decimal


class SweepOut(BaseModel):
    scanned: int
    expired: int
