# cayman_bank/api/accounts.py
"""
Account holder endpoints: balances, deposits, transfers, statements and
withdrawal receipts.
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cayman_bank import crud
from cayman_bank.api.deps import RequestContext, get_context, get_gateway, require_active
from cayman_bank.core.errors import NotFoundError
from cayman_bank.database import get_db
from cayman_bank.i18n import t
from cayman_bank.ledger import LedgerGateway
from cayman_bank.schemas import (
    AccountOut,
    BalanceOut,
    DepositIn,
    ReceiptOut,
    StatementOut,
    TransactionOut,
    TransferIn,
)

router = APIRouter()


@router.get("/accounts", response_model=List[AccountOut])
def list_accounts(
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    return crud.list_accounts(db, ctx.user_id)


@router.post("/accounts/{account_id}/deposit", response_model=BalanceOut)
def deposit(
    account_id: str,
    body: DepositIn,
    ctx: RequestContext = Depends(require_active),
    db: Session = Depends(get_db),
    gateway: LedgerGateway = Depends(get_gateway),
):
    account = crud.get_owned_account(db, ctx.user_id, account_id, ctx.lang)
    new_balance = crud.deposit(gateway, account, body.amount, description=body.description, lang=ctx.lang)
    return BalanceOut(new_balance=new_balance)


@router.post("/transfers", response_model=BalanceOut)
def transfer(
    body: TransferIn,
    ctx: RequestContext = Depends(require_active),
    db: Session = Depends(get_db),
    gateway: LedgerGateway = Depends(get_gateway),
):
    source = crud.get_owned_account(db, ctx.user_id, body.from_account_id, ctx.lang)
    target = crud.get_owned_account(db, ctx.user_id, body.to_account_id, ctx.lang)
    crud.transfer(gateway, source, target, body.amount, description=body.description, lang=ctx.lang)
    return BalanceOut()


@router.get("/statements", response_model=StatementOut)
def statements(
    account: Optional[str] = Query(None, description="Account id, defaults to the first account"),
    period: int = Query(30, ge=1, le=366, description="Days back from today"),
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    if account:
        acc = crud.get_owned_account(db, ctx.user_id, account, ctx.lang)
    else:
        owned = crud.list_accounts(db, ctx.user_id)
        if not owned:
            raise NotFoundError(t(ctx.lang, "ERR_ACCOUNT_NOT_FOUND"))
        acc = owned[0]

    st = crud.statement(db, acc, period_days=period)
    return StatementOut(
        account=AccountOut.model_validate(st.account),
        start=st.start,
        end=st.end,
        total_credits=st.total_credits,
        total_debits=st.total_debits,
        entries=[TransactionOut.model_validate(e) for e in st.entries],
    )


@router.get("/withdrawals/receipts/{transaction_id}", response_model=ReceiptOut)
def withdrawal_receipt(
    transaction_id: str,
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    tx, acc = crud.withdrawal_receipt(db, ctx.user_id, transaction_id)
    return ReceiptOut(
        transaction=TransactionOut.model_validate(tx),
        account_number=acc.account_number,
        account_type=acc.account_type,
        balance=acc.balance,
    )
