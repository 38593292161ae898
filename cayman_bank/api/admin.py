# cayman_bank/api/admin.py
"""
Administrator endpoints: pending transaction review, account freeze and
manual balance adjustments.
"""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cayman_bank import crud, review
from cayman_bank.api.deps import RequestContext, get_gateway, get_review_gateway, require_admin
from cayman_bank.core.config import Settings, get_settings
from cayman_bank.database import get_db
from cayman_bank.expiry import expire_abandoned_challenges
from cayman_bank.ledger import LedgerGateway
from cayman_bank.schemas import (
    AdjustIn,
    BalanceOut,
    FreezeIn,
    PendingTransactionOut,
    ProfileOut,
    RejectIn,
    SweepOut,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/pending", response_model=List[PendingTransactionOut])
def list_pending(
    ctx: RequestContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return review.list_pending(db)


@router.post("/pending/expire", response_model=SweepOut)
def expire_pending(
    ctx: RequestContext = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = expire_abandoned_challenges(
        db,
        older_than_minutes=settings.PENDING_OTP_TTL_MINUTES,
        reviewer=ctx.user_id,
    )
    return SweepOut(scanned=result.scanned, expired=result.expired)


@router.post("/pending/{pending_id}/approve", response_model=PendingTransactionOut)
def approve_pending(
    pending_id: str,
    ctx: RequestContext = Depends(require_admin),
    db: Session = Depends(get_db),
    gateway: LedgerGateway = Depends(get_review_gateway),
):
    return review.approve(db, pending_id, admin_id=ctx.user_id, gateway=gateway)


@router.post("/pending/{pending_id}/reject", response_model=PendingTransactionOut)
def reject_pending(
    pending_id: str,
    body: RejectIn,
    ctx: RequestContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return review.reject(db, pending_id, admin_id=ctx.user_id, reason=body.reason)


@router.post("/users/{user_id}/freeze", response_model=ProfileOut)
def freeze_user(
    user_id: str,
    body: FreezeIn,
    ctx: RequestContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    logger.info("admin %s sets frozen=%s on %s", ctx.user_id, body.frozen, user_id)
    return crud.set_frozen(db, user_id, frozen=body.frozen, reason=body.reason)


@router.post("/accounts/{account_id}/adjust", response_model=BalanceOut)
def adjust_balance(
    account_id: str,
    body: AdjustIn,
    ctx: RequestContext = Depends(require_admin),
    db: Session = Depends(get_db),
    gateway: LedgerGateway = Depends(get_gateway),
):
    account = crud.get_account(db, account_id)
    new_balance = crud.admin_adjust_balance(
        gateway,
        account,
        operation=body.operation,
        amount=body.amount,
        admin_id=ctx.user_id,
        description=body.description,
    )
    return BalanceOut(new_balance=new_balance)
