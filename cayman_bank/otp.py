# cayman_bank/otp.py
from __future__ import annotations

import enum
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from cayman_bank.core.errors import (
    BusinessRejectionError,
    FlowBusyError,
    FormValidationError,
    InvalidTransitionError,
)
from cayman_bank.decisions import Completed, RequiresOtp
from cayman_bank.ledger import LedgerGateway

logger = logging.getLogger(__name__)

OTP_PATTERN = re.compile(r"^\d{6}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OtpState(str, enum.Enum):
    IDLE = "idle"
    ISSUED = "issued"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    # last attempt failed; resubmission allowed
    FAILED = "failed"


class OtpChallenge:
    """Client side of a one-time code tied to one pending transaction.

    The code is issued by the backend inside a RequiresOtp decision; this
    object only tracks the countdown and the verification round-trip. Expiry
    shown here is informational, the backend decides.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self.state = OtpState.IDLE
        self.pending_id: Optional[str] = None
        self.code: Optional[str] = None
        self.expires_at: Optional[datetime] = None
        self.transaction_id: Optional[str] = None
        self.last_error: Optional[str] = None
        self.attempts = 0

    def issue(self, decision: RequiresOtp) -> None:
        self.pending_id = decision.pending_id
        self.code = decision.code
        self.expires_at = self._clock() + timedelta(seconds=decision.expires_in_seconds)
        self.transaction_id = None
        self.last_error = None
        self.attempts = 0
        self.state = OtpState.ISSUED
        logger.info("otp issued pending=%s expires_at=%s", self.pending_id, self.expires_at.isoformat())

    def seconds_remaining(self, now: Optional[datetime] = None) -> int:
        if self.expires_at is None:
            return 0
        now = now or self._clock()
        return max(0, int((self.expires_at - now).total_seconds()))

    def submit(self, gateway: LedgerGateway, input_code: str) -> Completed:
        if self.state == OtpState.VERIFYING:
            raise FlowBusyError("Verification already in progress")
        if self.state not in (OtpState.ISSUED, OtpState.FAILED):
            raise InvalidTransitionError("No verification code is awaiting input")

        code = (input_code or "").strip()
        if not OTP_PATTERN.match(code):
            self.last_error = "Please enter the 6-digit verification code"
            raise FormValidationError(self.last_error)

        self.state = OtpState.VERIFYING
        self.attempts += 1
        try:
            result = gateway.verify_otp(self.pending_id, code)
        except Exception as e:
            self.state = OtpState.FAILED
            self.last_error = getattr(e, "message", "OTP verification failed")
            raise

        if isinstance(result, Completed):
            self.state = OtpState.VERIFIED
            self.transaction_id = result.transaction_id
            self.last_error = None
            logger.info("otp verified pending=%s transaction=%s", self.pending_id, result.transaction_id)
            return result

        self.state = OtpState.FAILED
        self.last_error = result.reason
        logger.warning("otp rejected pending=%s attempt=%s", self.pending_id, self.attempts)
        raise BusinessRejectionError(result.reason)

    def cancel(self) -> Optional[str]:
        """Drop the challenge. Returns the pending id left behind on the backend."""
        left = self.pending_id if self.state != OtpState.VERIFIED else None
        if left:
            logger.info("otp challenge abandoned pending=%s", left)
        self.state = OtpState.IDLE
        self.code = None
        self.expires_at = None
        self.last_error = None
        return left
