# cayman_bank/withdrawal.py
"""Withdrawal to an external bank, as one explicit state machine.

    FORM -> VAT_GATE -> COT_GATE -> SUBMITTING -> COMPLETED
                                              -> OTP_PENDING -> COMPLETED
                                              -> AWAITING_APPROVAL
                                              -> FORM (rejected / backend error)

Each public method is one user action. A flow never writes balances; the
only money-moving call is the risk evaluation made on leaving COT_GATE, and
the OTP verification made from OTP_PENDING.
"""
from __future__ import annotations

import enum
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterator, Mapping, Optional

from cayman_bank.core.config import Settings
from cayman_bank.core.errors import (
    BackendUnavailableError,
    BankingError,
    BusinessRejectionError,
    FlowBusyError,
    FormValidationError,
    GateRejectedError,
    InvalidTransitionError,
    NotFoundError,
)
from cayman_bank.decisions import Completed, PendingApproval, Rejected, RequiresOtp
from cayman_bank.gates import GATE_COT, GATE_VAT, GateSequence
from cayman_bank.i18n import t
from cayman_bank.ledger import LedgerGateway, parse_amount
from cayman_bank.otp import OtpChallenge

logger = logging.getLogger(__name__)

WITHDRAWAL_TYPE = "withdrawal"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlowState(str, enum.Enum):
    FORM = "form"
    VAT_GATE = "vat_gate"
    COT_GATE = "cot_gate"
    SUBMITTING = "submitting"
    OTP_PENDING = "otp_pending"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"


TERMINAL_STATES = (FlowState.COMPLETED, FlowState.AWAITING_APPROVAL)


@dataclass
class WithdrawalRequest:
    """What the user typed into the withdrawal form."""

    account_id: str = ""
    amount: str = ""
    description: str = ""
    bank_name: str = ""
    bank_address: str = ""
    routing_number: str = ""
    destination_account_number: str = ""

    def bank_details(self) -> str:
        return (
            f"Bank: {self.bank_name}; Address: {self.bank_address}; "
            f"Routing: {self.routing_number}; Account: {self.destination_account_number}"
        )

    def compose_description(self, default: str) -> str:
        prefix = self.description.strip() or default
        return f"{prefix} | {self.bank_details()}"

    def cleared(self) -> "WithdrawalRequest":
        # the selected account survives a reset, everything typed does not
        return WithdrawalRequest(account_id=self.account_id)


@dataclass(frozen=True)
class Message:
    kind: str  # success / error / info
    text: str


@dataclass(frozen=True)
class WithdrawalReceipt:
    transaction_id: Optional[str]
    amount: Decimal
    account_number: str


class WithdrawalFlow:
    def __init__(
        self,
        user_id: str,
        *,
        settings: Settings,
        lang: str = "en",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.flow_id = uuid.uuid4().hex
        self.user_id = user_id
        self.lang = lang
        self.state = FlowState.FORM
        self.request = WithdrawalRequest()
        self.amount: Optional[Decimal] = None
        self.account_number: str = ""
        self.message: Optional[Message] = None
        self.receipt: Optional[WithdrawalReceipt] = None
        self.pending_id: Optional[str] = None
        self.abandoned_pending_ids: list[str] = []

        self._otp_ttl = settings.OTP_DEFAULT_TTL_SECONDS
        self._display_code = settings.OTP_DISPLAY_CODE
        self.gates = GateSequence(
            expected={GATE_VAT: settings.VAT_CODE, GATE_COT: settings.COT_CODE},
            max_attempts=settings.GATE_MAX_ATTEMPTS,
            flow_id=self.flow_id,
        )
        self.otp = OtpChallenge(clock=clock)

    # --------- helpers ---------

    def _require(self, *states: FlowState) -> None:
        if self.state == FlowState.SUBMITTING:
            raise FlowBusyError("Your withdrawal is being processed")
        if self.state not in states:
            raise InvalidTransitionError(
                f"Action not allowed while the withdrawal is in state '{self.state.value}'"
            )

    def _fail(self, exc: BankingError) -> BankingError:
        self.message = Message("error", exc.message)
        return exc

    def _back_to_form(self, text: str) -> None:
        self.state = FlowState.FORM
        self.gates.reset()
        self.message = Message("error", text)

    # --------- transitions ---------

    def submit_form(self, request: WithdrawalRequest, owned_accounts: Mapping[str, str]) -> None:
        """Validate the form. ``owned_accounts`` maps account id -> account number."""
        self._require(FlowState.FORM)
        self.request = request

        if not request.account_id or request.account_id not in owned_accounts:
            raise self._fail(FormValidationError(t(self.lang, "ERR_ACCOUNT_REQUIRED")))

        amount = parse_amount(request.amount)
        if amount is None:
            raise self._fail(FormValidationError(t(self.lang, "ERR_AMOUNT_INVALID")))

        bank_fields = (
            request.bank_name,
            request.bank_address,
            request.routing_number,
            request.destination_account_number,
        )
        if not all((x or "").strip() for x in bank_fields):
            raise self._fail(FormValidationError(t(self.lang, "ERR_BANK_DETAILS")))

        # no balance check here: the backend is authoritative for withdrawals
        self.amount = amount
        self.account_number = owned_accounts[request.account_id]
        self.gates.reset()
        self.message = None
        self.state = FlowState.VAT_GATE

    def submit_vat(self, code: str) -> None:
        self._require(FlowState.VAT_GATE)
        self._pass_gate(GATE_VAT, code, "ERR_VAT_INVALID")
        self.message = None
        self.state = FlowState.COT_GATE

    def submit_cot(self, code: str, gateway: LedgerGateway) -> None:
        self._require(FlowState.COT_GATE)
        self._pass_gate(GATE_COT, code, "ERR_COT_INVALID")
        self.message = None
        self._submit(gateway)

    def _pass_gate(self, gate: str, code: str, error_key: str) -> None:
        if self.gates.attempt(gate, code):
            return
        if self.gates.is_locked(gate):
            text = t(self.lang, "ERR_GATE_LOCKED")
            self._back_to_form(text)
            raise GateRejectedError(text)
        raise self._fail(GateRejectedError(t(self.lang, error_key)))

    def _submit(self, gateway: LedgerGateway) -> None:
        self.state = FlowState.SUBMITTING
        description = self.request.compose_description(t(self.lang, "DEFAULT_WITHDRAW_DESCRIPTION"))
        try:
            decision = gateway.evaluate(
                self.request.account_id,
                -self.amount,
                WITHDRAWAL_TYPE,
                description,
                default_ttl=self._otp_ttl,
            )
        except BackendUnavailableError:
            self._back_to_form(t(self.lang, "ERR_BACKEND"))
            raise
        except Exception:
            logger.exception("withdrawal submit failed flow=%s", self.flow_id)
            self._back_to_form(t(self.lang, "ERR_WITHDRAW_FAILED"))
            raise

        if isinstance(decision, Completed):
            self._complete(decision.transaction_id)
            return

        if isinstance(decision, RequiresOtp):
            self.pending_id = decision.pending_id
            self.otp.issue(decision)
            minutes = max(1, decision.expires_in_seconds // 60)
            if self._display_code:
                text = t(self.lang, "INFO_OTP_REQUIRED", code=decision.code, minutes=minutes)
            else:
                text = t(self.lang, "INFO_OTP_SENT", minutes=minutes)
            self.message = Message("info", text)
            self.state = FlowState.OTP_PENDING
            return

        if isinstance(decision, PendingApproval):
            self.pending_id = decision.pending_id
            self.request = self.request.cleared()
            self.message = Message("info", t(self.lang, "INFO_PENDING_APPROVAL"))
            self.state = FlowState.AWAITING_APPROVAL
            logger.info(
                "withdrawal held for approval flow=%s pending=%s amount=%s",
                self.flow_id,
                decision.pending_id,
                self.amount,
                extra={"flow_id": self.flow_id, "user_id": self.user_id, "pending_id": decision.pending_id},
            )
            return

        if not isinstance(decision, Rejected):
            self._back_to_form(t(self.lang, "ERR_BACKEND"))
            raise BackendUnavailableError(f"Unexpected decision {type(decision).__name__}")
        reason = decision.reason or t(self.lang, "ERR_WITHDRAW_FAILED")
        self._back_to_form(reason)
        logger.info(
            "withdrawal rejected flow=%s reason=%s",
            self.flow_id,
            reason,
            extra={"flow_id": self.flow_id, "user_id": self.user_id},
        )
        raise BusinessRejectionError(reason)

    def submit_otp(self, code: str, gateway: LedgerGateway) -> None:
        self._require(FlowState.OTP_PENDING)
        try:
            result = self.otp.submit(gateway, code)
        except BankingError as e:
            raise self._fail(e)
        self._complete(result.transaction_id)

    def _complete(self, transaction_id: Optional[str]) -> None:
        self.receipt = WithdrawalReceipt(
            transaction_id=transaction_id,
            amount=self.amount,
            account_number=self.account_number,
        )
        self.message = Message("success", t(self.lang, "SUCCESS_WITHDRAWAL", amount=f"{self.amount:,.2f}"))
        self.state = FlowState.COMPLETED
        logger.info(
            "withdrawal completed flow=%s transaction=%s amount=%s",
            self.flow_id,
            transaction_id,
            self.amount,
            extra={"flow_id": self.flow_id, "user_id": self.user_id, "transaction_id": transaction_id},
        )

    def cancel(self) -> None:
        """Close the current modal. Entered data is kept."""
        if self.state == FlowState.FORM:
            return
        self._require(FlowState.VAT_GATE, FlowState.COT_GATE, FlowState.OTP_PENDING)
        if self.state == FlowState.OTP_PENDING:
            left = self.otp.cancel()
            if left:
                # stays requires_otp on the backend until the sweep or an admin resolves it
                self.abandoned_pending_ids.append(left)
            self.pending_id = None
        self.gates.reset()
        self.message = None
        self.state = FlowState.FORM

    # --------- read model ---------

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def view(self) -> dict:
        data = {
            "flow_id": self.flow_id,
            "state": self.state.value,
            "message": asdict(self.message) if self.message else None,
            "form": asdict(self.request),
            "pending_id": self.pending_id,
            # left in requires_otp on the backend after a cancelled challenge
            "abandoned_pending_ids": list(self.abandoned_pending_ids),
            "otp": None,
            "receipt": None,
        }
        if self.state == FlowState.OTP_PENDING:
            data["otp"] = {
                "pending_id": self.otp.pending_id,
                "seconds_remaining": self.otp.seconds_remaining(),
                "attempts": self.otp.attempts,
            }
        if self.receipt:
            data["receipt"] = {
                "transaction_id": self.receipt.transaction_id,
                "amount": str(self.receipt.amount),
                "account_number": self.receipt.account_number,
            }
        return data


@dataclass
class _Slot:
    flow: WithdrawalFlow
    lock: threading.Lock = field(default_factory=threading.Lock)
    touched: float = field(default_factory=time.monotonic)


class FlowRegistry:
    """Live withdrawal flows of this process, keyed by flow id."""

    def __init__(self, ttl_seconds: int = 1800, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._slots: Dict[str, _Slot] = {}
        self._lock = threading.Lock()

    def _evict(self) -> None:
        cutoff = self._clock() - self.ttl_seconds
        for flow_id in [k for k, s in self._slots.items() if s.touched < cutoff]:
            slot = self._slots.pop(flow_id)
            if slot.flow.state == FlowState.OTP_PENDING and slot.flow.otp.pending_id:
                logger.info("flow expired with open otp flow=%s pending=%s", flow_id, slot.flow.otp.pending_id)

    def create(self, user_id: str, *, settings: Settings, lang: str = "en") -> WithdrawalFlow:
        flow = WithdrawalFlow(user_id, settings=settings, lang=lang)
        with self._lock:
            self._evict()
            self._slots[flow.flow_id] = _Slot(flow=flow, touched=self._clock())
        return flow

    def _slot(self, flow_id: str, user_id: str) -> _Slot:
        with self._lock:
            self._evict()
            slot = self._slots.get(flow_id)
            # someone else's flow is indistinguishable from a missing one
            if slot is None or slot.flow.user_id != user_id:
                raise NotFoundError("Withdrawal not found or expired")
            slot.touched = self._clock()
            return slot

    def get(self, flow_id: str, user_id: str) -> WithdrawalFlow:
        return self._slot(flow_id, user_id).flow

    @contextmanager
    def hold(self, flow_id: str, user_id: str) -> Iterator[WithdrawalFlow]:
        """Exclusive access to a flow for one action; a second concurrent action is refused."""
        slot = self._slot(flow_id, user_id)
        if not slot.lock.acquire(blocking=False):
            raise FlowBusyError("Your withdrawal is being processed")
        try:
            yield slot.flow
        finally:
            slot.lock.release()

    def __len__(self) -> int:
        return len(self._slots)
