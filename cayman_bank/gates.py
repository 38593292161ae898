# cayman_bank/gates.py
"""Sequential shared-secret gates (VAT, then COT) in front of a withdrawal.

These are configuration-driven checkpoints, not a cryptographic control: the
expected values are plain settings. Comparison is constant-time, attempts are
counted and logged, and a gate locks after too many failures.
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

GATE_VAT = "vat"
GATE_COT = "cot"
GATE_ORDER = (GATE_VAT, GATE_COT)


def verify_gate(gate_name: str, user_input: str | None, expected_value: str) -> bool:
    """True when the trimmed input equals the configured expected value."""
    if not expected_value:
        # an unset code must never open the gate
        logger.error("gate %s has no expected value configured", gate_name)
        return False
    supplied = (user_input or "").strip()
    return hmac.compare_digest(supplied.encode("utf-8"), expected_value.encode("utf-8"))


@dataclass
class GateSequence:
    """Ordered gates for one withdrawal flow."""

    expected: dict[str, str]
    max_attempts: int = 5
    flow_id: str = ""
    position: int = 0
    failures: dict[str, int] = field(default_factory=dict)

    @property
    def current(self) -> str | None:
        if self.position >= len(GATE_ORDER):
            return None
        return GATE_ORDER[self.position]

    def is_locked(self, gate_name: str) -> bool:
        return self.failures.get(gate_name, 0) >= self.max_attempts

    def attempt(self, gate_name: str, user_input: str | None) -> bool:
        """Check one gate. Only the current gate can be attempted."""
        if gate_name != self.current:
            raise ValueError(f"gate {gate_name!r} is not the current gate ({self.current!r})")
        if self.is_locked(gate_name):
            return False

        ok = verify_gate(gate_name, user_input, self.expected.get(gate_name, ""))
        if ok:
            self.position += 1
            logger.info("gate passed flow=%s gate=%s", self.flow_id, gate_name)
        else:
            self.failures[gate_name] = self.failures.get(gate_name, 0) + 1
            logger.warning(
                "gate failed flow=%s gate=%s attempt=%s/%s",
                self.flow_id,
                gate_name,
                self.failures[gate_name],
                self.max_attempts,
            )
        return ok

    def reset(self) -> None:
        self.position = 0
        self.failures.clear()
