# cayman_bank/api/deps.py
"""
Request-scoped dependencies. Everything a handler needs about the caller is
resolved once here and passed explicitly.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from cayman_bank import crud
from cayman_bank.core.config import Settings, get_settings
from cayman_bank.core.errors import BusinessRejectionError, PermissionDeniedError
from cayman_bank.database import get_db
from cayman_bank.i18n import normalize_lang, t
from cayman_bank.ledger import LedgerGateway, SqlLedgerGateway
from cayman_bank.withdrawal import FlowRegistry


@dataclass(frozen=True)
class RequestContext:
    user_id: str
    is_admin: bool
    lang: str


def get_context(
    x_user_id: Optional[str] = Header(default=None),
    accept_language: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> RequestContext:
    """The identity provider's proxy authenticates and forwards X-User-Id."""
    if not x_user_id or not x_user_id.strip():
        raise PermissionDeniedError("Not authenticated")
    user_id = x_user_id.strip()

    prof = crud.get_profile(db, user_id)
    is_admin = user_id in settings.admin_ids or bool(prof and prof.is_admin)
    lang = normalize_lang(accept_language or settings.DEFAULT_LANGUAGE)
    return RequestContext(user_id=user_id, is_admin=is_admin, lang=lang)


def require_admin(ctx: RequestContext = Depends(get_context)) -> RequestContext:
    if not ctx.is_admin:
        raise PermissionDeniedError(t(ctx.lang, "ADMIN_NO_PERMISSION"))
    return ctx


def require_active(
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
) -> RequestContext:
    """Money-moving routes refuse frozen profiles."""
    if crud.is_frozen(db, ctx.user_id):
        raise BusinessRejectionError(t(ctx.lang, "ERR_ACCOUNT_FROZEN"))
    return ctx


def get_gateway(db: Session = Depends(get_db)) -> LedgerGateway:
    return SqlLedgerGateway(db)


def get_registry(request: Request) -> FlowRegistry:
    return request.app.state.flows


def get_review_gateway(db: Session = Depends(get_db)) -> LedgerGateway:
    # approve commits the balance change together with the status update
    return SqlLedgerGateway(db, autocommit=False)
