# cayman_bank/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cayman_bank.api import accounts, admin, withdrawals
from cayman_bank.bot.admin_bot import initialize_bot, process_webhook
from cayman_bank.core.config import settings
from cayman_bank.core.errors import BankingError
from cayman_bank.core.logging_config import setup_logging
from cayman_bank.database import init_db
from cayman_bank.monitoring import run_selftest
from cayman_bank.withdrawal import FlowRegistry

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_TITLE)
app.state.flows = FlowRegistry(ttl_seconds=settings.FLOW_TTL_SECONDS)

app.include_router(accounts.router, tags=["accounts"])
app.include_router(withdrawals.router, prefix="/withdrawals", tags=["withdrawals"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])


@app.exception_handler(BankingError)
async def banking_error_handler(request: Request, exc: BankingError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"ok": False, "error": "Internal error", "code": "internal_error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


@app.on_event("startup")
async def startup_event():
    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT, service=settings.APP_TITLE)

    # DB first, then the bot
    try:
        init_db()
        logger.info("DB initialized")
    except Exception:
        logger.exception("DB init failed (startup). Continuing to boot app.")

    try:
        await initialize_bot()
        logger.info("Bot initialized")
    except Exception:
        logger.exception("Bot init failed (startup). Continuing to boot app.")


@app.get("/")
async def root():
    return {"message": f"{settings.APP_TITLE} is running"}


@app.get("/health")
async def health():
    return {"status": "ok", "flows": len(app.state.flows)}


@app.get("/ready")
async def ready():
    result = run_selftest(quick=True)
    return {"status": result.get("status", "unknown"), "checks": result.get("checks", [])}


@app.get("/selftest")
async def selftest():
    return run_selftest(quick=False)


@app.post("/webhook/telegram")
async def telegram_webhook(request: Request):
    """
    Telegram expects fast 200 responses.
    Even on an internal exception we return 200 to avoid retry storms.
    """
    try:
        update_dict = await request.json()
    except Exception:
        logger.warning("Webhook received invalid JSON")
        return JSONResponse({"ok": False, "error": "invalid_json"}, status_code=status.HTTP_200_OK)

    try:
        await process_webhook(update_dict)
        return JSONResponse({"ok": True}, status_code=status.HTTP_200_OK)
    except Exception:
        logger.exception("Webhook processing failed")
        return JSONResponse({"ok": False}, status_code=status.HTTP_200_OK)
