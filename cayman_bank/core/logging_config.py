# cayman_bank/core/logging_config.py
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

# passed as extra={...} by the withdrawal, review and ledger code
CONTEXT_FIELDS = ("flow_id", "user_id", "pending_id", "account_id", "transaction_id")

NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "telegram", "uvicorn.access")


def setup_logging(level: str = "INFO", format_type: str = "standard", service: Optional[str] = None) -> None:
    """Configure the root logger for the service.

    ``format_type="json"`` writes one object per line, with the withdrawal
    context fields (flow id, pending id...) lifted to top-level keys so they
    can be filtered on. Anything else gives plain lines for local runs.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter(service=service)
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


class JsonFormatter(logging.Formatter):
    def __init__(self, service: Optional[str] = None):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            data["service"] = self.service

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                data[key] = value

        # logger.info(..., extra={"extra": {...}}) for free-form fields
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            data.update(extra)

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str, ensure_ascii=False)
