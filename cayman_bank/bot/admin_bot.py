# cayman_bank/bot/admin_bot.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from telegram import (
    Update,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
)
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
)

from cayman_bank import models, review
from cayman_bank.core.config import settings
from cayman_bank.core.errors import BankingError
from cayman_bank.database import get_sessionmaker
from cayman_bank.expiry import expire_abandoned_challenges
from cayman_bank.i18n import t

logger = logging.getLogger(__name__)

MAX_LISTED = 20


def _pending_line(row: models.PendingTransaction) -> str:
    return (
        f"- {row.id}\n"
        f"  {row.transaction_type} {Decimal(row.amount or 0):,.2f} | {row.status}\n"
        f"  account={row.account_id}\n"
        f"  {row.description or ''}"
    )


def _review_markup(pending_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("✅ Approve", callback_data=f"APPROVE:{pending_id}"),
                InlineKeyboardButton("❌ Reject", callback_data=f"REJECT:{pending_id}"),
            ]
        ]
    )


class AdminReviewBot:
    """Telegram surface for the pending transaction queue."""

    def __init__(self):
        self.application: Application | None = None

    def _db(self):
        return get_sessionmaker()()

    def _is_admin(self, telegram_id: int) -> bool:
        return str(telegram_id) in settings.bot_admin_ids

    def _reviewer(self) -> Optional[str]:
        # approvals are recorded against a real identity-provider user
        return settings.BOT_ADMIN_USER_ID

    async def initialize(self):
        if not settings.BOT_TOKEN:
            logger.warning("BOT_TOKEN missing, admin bot disabled")
            return

        self.application = Application.builder().token(settings.BOT_TOKEN).build()

        self.application.add_handler(CommandHandler("start", self.cmd_help))
        self.application.add_handler(CommandHandler("help", self.cmd_help))
        self.application.add_handler(CommandHandler("pending", self.cmd_pending))
        self.application.add_handler(CommandHandler("approve", self.cmd_approve))
        self.application.add_handler(CommandHandler("reject", self.cmd_reject))
        self.application.add_handler(CommandHandler("expire", self.cmd_expire))
        self.application.add_handler(CommandHandler("status", self.cmd_status))

        self.application.add_handler(CallbackQueryHandler(self.cb_review))

        self.application.add_error_handler(self.on_error)

        await self.application.initialize()

        if settings.WEBHOOK_URL:
            url = f"{settings.WEBHOOK_URL.rstrip('/')}/webhook/telegram"
            await self.application.bot.set_webhook(url)
            logger.info("Webhook set: %s", url)

        logger.info("AdminReviewBot initialized")

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.error("Unhandled bot error", exc_info=context.error)
        if isinstance(update, Update) and update.effective_message:
            await update.effective_message.reply_text("⚠️ Temporary error. Try /pending again.")

    # --------- actions (shared by commands & callbacks) ---------

    def _approve(self, pending_id: str) -> str:
        reviewer = self._reviewer()
        if not reviewer:
            return "BOT_ADMIN_USER_ID is not configured, approve from the web console."
        db = self._db()
        try:
            row = review.approve(db, pending_id, admin_id=reviewer)
            return f"✅ Approved {row.id} ({Decimal(row.amount):,.2f})"
        except BankingError as e:
            return f"Could not approve {pending_id}: {e.message}"
        finally:
            db.close()

    def _reject(self, pending_id: str, reason: str) -> str:
        db = self._db()
        try:
            row = review.reject(db, pending_id, admin_id=self._reviewer() or "telegram", reason=reason)
            return f"❌ Rejected {row.id}: {row.rejection_reason}"
        except BankingError as e:
            return f"Could not reject {pending_id}: {e.message}"
        finally:
            db.close()

    # --------- Commands ---------

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_admin(update.effective_user.id):
            await update.message.reply_text(t("en", "ADMIN_NO_PERMISSION"))
            return
        await update.message.reply_text(
            "Commands:\n"
            "/pending – actionable pending transactions\n"
            "/approve <id> – apply and approve\n"
            "/reject <id> <reason> – reject without touching balances\n"
            "/expire – reject abandoned OTP challenges\n"
            "/status – queue counters"
        )

    async def cmd_pending(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_admin(update.effective_user.id):
            await update.message.reply_text(t("en", "ADMIN_NO_PERMISSION"))
            return
        db = self._db()
        try:
            rows = review.list_pending(db)[:MAX_LISTED]
            if not rows:
                await update.message.reply_text(t("en", "ADMIN_NO_PENDING"))
                return
            for row in rows:
                await update.message.reply_text(_pending_line(row), reply_markup=_review_markup(row.id))
        finally:
            db.close()

    async def cmd_approve(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_admin(update.effective_user.id):
            await update.message.reply_text(t("en", "ADMIN_NO_PERMISSION"))
            return
        if not context.args:
            await update.message.reply_text("Usage: /approve <pending_id>")
            return
        await update.message.reply_text(self._approve(context.args[0]))

    async def cmd_reject(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_admin(update.effective_user.id):
            await update.message.reply_text(t("en", "ADMIN_NO_PERMISSION"))
            return
        if not context.args:
            await update.message.reply_text("Usage: /reject <pending_id> <reason>")
            return
        reason = " ".join(context.args[1:]) or "Rejected by admin"
        await update.message.reply_text(self._reject(context.args[0], reason))

    async def cmd_expire(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_admin(update.effective_user.id):
            await update.message.reply_text(t("en", "ADMIN_NO_PERMISSION"))
            return
        db = self._db()
        try:
            result = expire_abandoned_challenges(
                db,
                older_than_minutes=settings.PENDING_OTP_TTL_MINUTES,
                reviewer=self._reviewer() or "telegram",
            )
        finally:
            db.close()
        await update.message.reply_text(f"Open OTP challenges: {result.scanned}\nExpired: {result.expired}")

    async def cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_admin(update.effective_user.id):
            await update.message.reply_text(t("en", "ADMIN_NO_PERMISSION"))
            return
        db = self._db()
        try:
            q = db.query(models.PendingTransaction)
            pending = q.filter(models.PendingTransaction.status == models.STATUS_PENDING).count()
            otp = q.filter(models.PendingTransaction.status == models.STATUS_REQUIRES_OTP).count()
            frozen = db.query(models.Profile).filter(models.Profile.is_frozen.is_(True)).count()
        finally:
            db.close()
        await update.message.reply_text(
            "📊 Review queue\n\n"
            f"Awaiting approval: {pending}\n"
            f"Awaiting OTP: {otp}\n"
            f"Frozen profiles: {frozen}\n"
        )

    # --------- Callback buttons ---------

    async def cb_review(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        q = update.callback_query
        await q.answer()

        if not self._is_admin(update.effective_user.id):
            return

        action, _, pending_id = (q.data or "").partition(":")
        if not pending_id:
            return

        if action == "APPROVE":
            await q.message.reply_text(self._approve(pending_id))
            return

        if action == "REJECT":
            await q.message.reply_text(self._reject(pending_id, "Rejected by admin"))
            return


# --------- bootstrap ---------

_bot = AdminReviewBot()


async def initialize_bot():
    await _bot.initialize()


async def process_webhook(update_dict: dict):
    if not _bot.application:
        return
    update = Update.de_json(update_dict, _bot.application.bot)
    await _bot.application.process_update(update)


async def notify_pending_approval(*, pending_id: str, account_number: str, amount: Decimal) -> bool:
    """Tell the admin chat a withdrawal is waiting. Returns False when nothing was sent."""
    if not _bot.application or not settings.ADMIN_NOTIFY_CHAT_ID:
        return False
    text = t(
        "en",
        "ADMIN_PENDING_NOTICE",
        pending_id=pending_id,
        account_number=account_number,
        amount=f"{Decimal(amount):,.2f}",
    )
    try:
        await _bot.application.bot.send_message(
            chat_id=settings.ADMIN_NOTIFY_CHAT_ID,
            text=text,
            reply_markup=_review_markup(pending_id),
        )
    except Exception:
        # the withdrawal is already held; a lost notice only delays review
        logger.exception("admin notification failed pending=%s", pending_id)
        return False
    return True
