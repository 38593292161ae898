"""Pytest configuration and fixtures."""

import json
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cayman_bank import models
from cayman_bank.core.config import Settings
from cayman_bank.core.errors import BackendUnavailableError
from cayman_bank.ledger import LedgerGateway

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"
ADMIN_ID = "99999999-9999-9999-9999-999999999999"
CHECKING_ID = "aaaaaaaa-0000-0000-0000-000000000001"
SAVINGS_ID = "aaaaaaaa-0000-0000-0000-000000000002"
OTHER_ACCOUNT_ID = "bbbbbbbb-0000-0000-0000-000000000001"

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for OTP countdowns and expiry."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeLedgerGateway(LedgerGateway):
    """In-process stand-in for the backend procedures.

    Risk decisions are scripted with ``queue_decision``; OTP codes handed out
    in a requires_otp decision are remembered and checked on verification.
    Balance changes are written into the session without committing, so the
    caller's transaction boundaries still apply.
    """

    def __init__(self, db: Session, clock: Optional[FakeClock] = None):
        self.db = db
        self.clock = clock or FakeClock()
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self._decisions: List[Any] = []
        self._otps: Dict[str, Tuple[str, datetime, str]] = {}
        self.fail_accounts: set = set()
        self.unavailable = False

    def queue_decision(self, payload: Any) -> None:
        self._decisions.append(payload)

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.unavailable:
            raise BackendUnavailableError("The banking backend is unavailable. Please try again.")

    def calls_to(self, name: str) -> List[Tuple[Any, ...]]:
        return [args for n, args in self.calls if n == name]

    # --------- procedures ---------

    def create_pending_transaction(self, account_id, amount, transaction_type, description):
        self._record("create_pending_transaction", account_id, amount, transaction_type, description)
        payload = self._decisions.pop(0) if self._decisions else {
            "status": "completed",
            "transaction_id": uuid.uuid4().hex,
        }
        data = json.loads(payload) if isinstance(payload, str) else payload
        if isinstance(data, dict) and data.get("status") == "requires_otp":
            ttl = int(data.get("expires_in_seconds") or 600)
            self._otps[data["pending_id"]] = (
                data["otp_code"],
                self.clock() + timedelta(seconds=ttl),
                data.get("transaction_id") or uuid.uuid4().hex,
            )
        return payload

    def verify_otp_and_complete(self, pending_id, otp_code):
        self._record("verify_otp_and_complete", pending_id, otp_code)
        issued = self._otps.get(pending_id)
        if issued is None:
            return {"status": "error", "message": "Pending transaction not found"}
        code, expires_at, transaction_id = issued
        if self.clock() > expires_at:
            return {"status": "error", "message": "OTP code expired"}
        if otp_code != code:
            return {"status": "error", "message": "Invalid OTP code"}
        del self._otps[pending_id]
        return {"status": "completed", "transaction_id": transaction_id}

    def update_account_balance(self, account_id, amount_change, description, admin_user_id=None):
        self._record("update_account_balance", account_id, amount_change, description, admin_user_id)
        if account_id in self.fail_accounts:
            return {"success": False, "error": "Update failed"}

        acc = self.db.query(models.Account).filter(models.Account.id == account_id).first()
        if acc is None:
            return {"success": False, "error": "Account not found"}
        new_balance = Decimal(acc.balance) + Decimal(amount_change)
        if new_balance < 0 and not admin_user_id:
            return {"success": False, "error": "Insufficient funds"}

        acc.balance = new_balance
        self.db.add(
            models.Transaction(
                id=str(uuid.uuid4()),
                account_id=account_id,
                amount=amount_change,
                transaction_type="admin_adjustment" if admin_user_id else "balance_update",
                description=description,
                created_at=self.clock(),
            )
        )
        self.db.flush()
        return {"success": True, "new_balance": str(new_balance)}


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine) -> Session:
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def seeded(db: Session) -> Session:
    """One customer with checking + savings, another customer, one admin."""
    db.add_all(
        [
            models.Profile(id=USER_ID, full_name="Jane Customer", created_at=T0),
            models.Profile(id=OTHER_USER_ID, full_name="Other Customer", created_at=T0),
            models.Profile(id=ADMIN_ID, full_name="Bank Admin", is_admin=True, created_at=T0),
            models.Account(
                id=CHECKING_ID,
                user_id=USER_ID,
                account_number="1000000001",
                account_type="checking",
                balance=Decimal("10000.00"),
                created_at=T0,
            ),
            models.Account(
                id=SAVINGS_ID,
                user_id=USER_ID,
                account_number="1000000002",
                account_type="savings",
                balance=Decimal("2500.00"),
                created_at=T0 + timedelta(minutes=1),
            ),
            models.Account(
                id=OTHER_ACCOUNT_ID,
                user_id=OTHER_USER_ID,
                account_number="2000000001",
                account_type="checking",
                balance=Decimal("50.00"),
                created_at=T0,
            ),
        ]
    )
    db.commit()
    return db


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway(seeded: Session, clock: FakeClock) -> FakeLedgerGateway:
    return FakeLedgerGateway(seeded, clock=clock)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any .env file or environment overrides."""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        ADMIN_USER_IDS=ADMIN_ID,
        VAT_CODE="VAT123",
        COT_CODE="COT456",
        GATE_MAX_ATTEMPTS=3,
        OTP_DEFAULT_TTL_SECONDS=600,
        OTP_DISPLAY_CODE=True,
        PENDING_OTP_TTL_MINUTES=30,
    )


@pytest.fixture
def owned_accounts() -> Dict[str, str]:
    return {CHECKING_ID: "1000000001", SAVINGS_ID: "1000000002"}


@pytest.fixture
def make_pending(seeded: Session) -> Callable[..., models.PendingTransaction]:
    """Insert a pending_transactions row the way the backend would."""

    def _make(
        *,
        status: str = models.STATUS_PENDING,
        amount: str = "-5000.00",
        account_id: str = CHECKING_ID,
        created_at: datetime = T0,
        description: Optional[str] = "Withdrawal to external bank | Bank: First; Address: 1 Main; Routing: 021; Account: 99",
        transaction_type: str = "withdrawal",
    ) -> models.PendingTransaction:
        row = models.PendingTransaction(
            id=str(uuid.uuid4()),
            account_id=account_id,
            amount=Decimal(amount),
            transaction_type=transaction_type,
            description=description,
            status=status,
            otp_code="123456" if status == models.STATUS_REQUIRES_OTP else None,
            created_at=created_at,
        )
        seeded.add(row)
        seeded.commit()
        return row

    return _make
