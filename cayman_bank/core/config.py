# cayman_bank/core/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Core ---
    APP_TITLE: str = "Capital Cayman Online Banking"
    DATABASE_URL: str = ""
    ADMIN_USER_IDS: str | None = None  # comma separated identity-provider ids

    # --- Withdrawal gates (shared secrets, see DESIGN.md) ---
    VAT_CODE: str = "VAT123"
    COT_CODE: str = "COT456"
    GATE_MAX_ATTEMPTS: int = 5

    # --- OTP / pending transactions ---
    OTP_DEFAULT_TTL_SECONDS: int = 600
    OTP_DISPLAY_CODE: bool = True  # show the issued code in the info message
    PENDING_OTP_TTL_MINUTES: int = 30
    FLOW_TTL_SECONDS: int = 1800

    # --- Admin bot (optional) ---
    BOT_TOKEN: str | None = None
    WEBHOOK_URL: str | None = None
    ADMIN_NOTIFY_CHAT_ID: str | None = None
    BOT_ADMIN_TELEGRAM_IDS: str | None = None  # comma separated telegram user ids
    BOT_ADMIN_USER_ID: str | None = None  # identity-provider id recorded for bot approvals

    # --- i18n ---
    DEFAULT_LANGUAGE: str = "en"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "standard"  # standard / json

    @property
    def admin_ids(self) -> set[str]:
        if not self.ADMIN_USER_IDS:
            return set()
        return {x.strip() for x in self.ADMIN_USER_IDS.split(",") if x.strip()}

    @property
    def bot_admin_ids(self) -> set[str]:
        if not self.BOT_ADMIN_TELEGRAM_IDS:
            return set()
        return {x.strip() for x in self.BOT_ADMIN_TELEGRAM_IDS.split(",") if x.strip()}

    @property
    def sqlalchemy_url(self) -> str:
        # Managed Postgres hands out postgres:// URLs; SQLAlchemy expects postgresql://
        if self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
        return self.DATABASE_URL


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency; tests override it with their own Settings."""
    return settings
