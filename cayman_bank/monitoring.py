# cayman_bank/monitoring.py
from __future__ import annotations

import time
from typing import Any, Dict, List

from sqlalchemy import text

from cayman_bank.core.config import settings
from cayman_bank.database import get_sessionmaker

# stored procedures the risk engine and ledger expose on the backend
REQUIRED_PROCEDURES = (
    "create_pending_transaction",
    "verify_otp_and_complete",
    "update_account_balance",
)

_DEFAULT_GATE_CODES = {"VAT_CODE": "VAT123", "COT_CODE": "COT456"}


def _check(name: str, ok: bool, detail: str = "", extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {"name": name, "ok": bool(ok)}
    if detail:
        row["detail"] = detail
    if extra:
        row["extra"] = extra
    return row


def run_selftest(quick: bool = True) -> dict:
    checks: List[Dict[str, Any]] = []

    # --- ENV sanity ---
    checks.append(_check("env:DATABASE_URL", bool(settings.DATABASE_URL)))
    for field_name, default in _DEFAULT_GATE_CODES.items():
        value = getattr(settings, field_name)
        checks.append(
            _check(
                f"env:{field_name}",
                bool(value) and value != default,
                detail="using the built-in default" if value == default else "",
            )
        )
    checks.append(_check("env:BOT_TOKEN", True, detail="set" if settings.BOT_TOKEN else "optional (admin bot disabled)"))

    # --- DB ---
    db_ok = False
    db_err = ""
    t0 = time.time()
    try:
        db = get_sessionmaker()()
        try:
            db.execute(text("SELECT 1"))
            db_ok = True

            if not quick:
                rows = db.execute(
                    text("SELECT proname FROM pg_proc WHERE proname = ANY(:names)"),
                    {"names": list(REQUIRED_PROCEDURES)},
                ).all()
                found = {r[0] for r in rows}
                for name in REQUIRED_PROCEDURES:
                    checks.append(_check(f"rpc:{name}", name in found))
        finally:
            db.close()
    except Exception as e:
        db_err = repr(e)

    checks.append(_check("db:select1", db_ok, detail=db_err, extra={"ms": int((time.time() - t0) * 1000)}))

    status = "ok" if all(c.get("ok") for c in checks) else "degraded"
    return {"status": status, "checks": checks}
