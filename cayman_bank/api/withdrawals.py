# cayman_bank/api/withdrawals.py
"""
Withdrawal flow endpoints. Every POST is one user action on the flow's state
machine; the response always carries the flow's current view so the page can
render the right step.
"""
from __future__ import annotations

import logging
from typing import Callable

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cayman_bank import crud
from cayman_bank.api.deps import (
    RequestContext,
    get_context,
    get_gateway,
    get_registry,
    require_active,
)
from cayman_bank.bot.admin_bot import notify_pending_approval
from cayman_bank.core.config import Settings, get_settings
from cayman_bank.core.errors import BankingError
from cayman_bank.database import get_db
from cayman_bank.ledger import LedgerGateway
from cayman_bank.schemas import CodeIn, WithdrawalForm
from cayman_bank.withdrawal import FlowRegistry, FlowState, WithdrawalFlow, WithdrawalRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _owned_accounts(db: Session, user_id: str) -> dict[str, str]:
    return {a.id: a.account_number for a in crud.list_accounts(db, user_id)}


def _act(flow: WithdrawalFlow, action: Callable[[], None], ok_status: int = status.HTTP_200_OK) -> JSONResponse:
    try:
        action()
    except BankingError as e:
        return JSONResponse(
            {"ok": False, "error": e.message, "flow": flow.view()},
            status_code=e.status_code,
        )
    return JSONResponse({"ok": True, "flow": flow.view()}, status_code=ok_status)


def _maybe_notify(flow: WithdrawalFlow, background: BackgroundTasks) -> None:
    if flow.state == FlowState.AWAITING_APPROVAL and flow.pending_id:
        background.add_task(
            notify_pending_approval,
            pending_id=flow.pending_id,
            account_number=flow.account_number,
            amount=flow.amount,
        )


@router.post("")
def start_withdrawal(
    form: WithdrawalForm,
    ctx: RequestContext = Depends(require_active),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    flows: FlowRegistry = Depends(get_registry),
):
    flow = flows.create(ctx.user_id, settings=settings, lang=ctx.lang)
    request = WithdrawalRequest(**form.model_dump())
    return _act(flow, lambda: flow.submit_form(request, _owned_accounts(db, ctx.user_id)), status.HTTP_201_CREATED)


@router.get("/{flow_id}")
def get_withdrawal(
    flow_id: str,
    ctx: RequestContext = Depends(require_active),
    flows: FlowRegistry = Depends(get_registry),
):
    return {"ok": True, "flow": flows.get(flow_id, ctx.user_id).view()}


@router.post("/{flow_id}/form")
def resubmit_form(
    flow_id: str,
    form: WithdrawalForm,
    ctx: RequestContext = Depends(require_active),
    db: Session = Depends(get_db),
    flows: FlowRegistry = Depends(get_registry),
):
    with flows.hold(flow_id, ctx.user_id) as flow:
        request = WithdrawalRequest(**form.model_dump())
        return _act(flow, lambda: flow.submit_form(request, _owned_accounts(db, ctx.user_id)))


@router.post("/{flow_id}/vat")
def submit_vat(
    flow_id: str,
    body: CodeIn,
    ctx: RequestContext = Depends(require_active),
    flows: FlowRegistry = Depends(get_registry),
):
    with flows.hold(flow_id, ctx.user_id) as flow:
        return _act(flow, lambda: flow.submit_vat(body.code))


@router.post("/{flow_id}/cot")
def submit_cot(
    flow_id: str,
    body: CodeIn,
    background: BackgroundTasks,
    ctx: RequestContext = Depends(require_active),
    gateway: LedgerGateway = Depends(get_gateway),
    flows: FlowRegistry = Depends(get_registry),
):
    with flows.hold(flow_id, ctx.user_id) as flow:
        response = _act(flow, lambda: flow.submit_cot(body.code, gateway))
        _maybe_notify(flow, background)
        return response


@router.post("/{flow_id}/otp")
def submit_otp(
    flow_id: str,
    body: CodeIn,
    ctx: RequestContext = Depends(require_active),
    gateway: LedgerGateway = Depends(get_gateway),
    flows: FlowRegistry = Depends(get_registry),
):
    with flows.hold(flow_id, ctx.user_id) as flow:
        return _act(flow, lambda: flow.submit_otp(body.code, gateway))


@router.post("/{flow_id}/cancel")
def cancel_withdrawal(
    flow_id: str,
    ctx: RequestContext = Depends(get_context),
    flows: FlowRegistry = Depends(get_registry),
):
    with flows.hold(flow_id, ctx.user_id) as flow:
        return _act(flow, flow.cancel)
