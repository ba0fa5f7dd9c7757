"""
Value types shared by the gateway, the confirmation race and the supervisor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from solders.transaction import VersionedTransaction


@dataclass(frozen=True)
class SignedTransaction:
    """
    A signed, serialized transaction.

    `raw` is transmitted unchanged on every attempt; `signature` is the
    base58 first signature, fixed at signing time.
    """
    raw: bytes
    signature: str

    def __post_init__(self) -> None:
        if not self.raw:
            raise ValueError("raw transaction bytes must not be empty")
        if not self.signature:
            raise ValueError("signature must not be empty")

    @classmethod
    def from_versioned(cls, tx: VersionedTransaction) -> "SignedTransaction":
        if not tx.signatures:
            raise ValueError("transaction is not signed")
        return cls(raw=bytes(tx), signature=str(tx.signatures[0]))

    def to_versioned(self) -> VersionedTransaction:
        return VersionedTransaction.from_bytes(self.raw)

    def __repr__(self) -> str:
        return f"SignedTransaction(signature={self.signature!r}, size={len(self.raw)})"


@dataclass(frozen=True)
class ExpiryWindow:
    """Blockhash the transaction references and the last height it can land at."""
    blockhash: str
    last_valid_block_height: int

    def is_expired(self, block_height: int) -> bool:
        return block_height > self.last_valid_block_height


@dataclass(frozen=True)
class SubmissionAttempt:
    attempt_number: int
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.attempt_number < 1:
            raise ValueError("attempt_number must be >= 1")

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class SimulationResult:
    success: bool
    error: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    units_consumed: Optional[int] = None


class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    ERROR = "error"


@dataclass
class ConfirmationResult:
    """Single value a confirmation subscription resolves to."""
    status: ConfirmationStatus
    slot: Optional[int] = None
    confirmation_status: Optional[str] = None
    execution_error: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def confirmed(
        cls,
        slot: Optional[int],
        confirmation_status: Optional[str] = None,
        execution_error: Optional[str] = None,
    ) -> "ConfirmationResult":
        return cls(
            status=ConfirmationStatus.CONFIRMED,
            slot=slot,
            confirmation_status=confirmation_status,
            execution_error=execution_error,
        )

    @classmethod
    def expired(cls, reason: str) -> "ConfirmationResult":
        return cls(status=ConfirmationStatus.EXPIRED, error=reason)

    @classmethod
    def failed(cls, reason: str) -> "ConfirmationResult":
        return cls(status=ConfirmationStatus.ERROR, error=reason)


# =============================================================================
# OUTCOMES
# =============================================================================

class OutcomeKind(str, Enum):
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    SIMULATION_FAILED = "simulation_failed"
    SEND_FAILED = "send_failed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Confirmed:
    signature: str
    slot: Optional[int] = None
    confirmation_status: Optional[str] = None
    # Set when the transaction landed but its instructions failed on chain.
    execution_error: Optional[str] = None
    attempts: int = 1
    kind: OutcomeKind = field(default=OutcomeKind.CONFIRMED, init=False)


@dataclass(frozen=True)
class Expired:
    signature: str
    reason: str = "block height exceeded"
    attempts: int = 1
    kind: OutcomeKind = field(default=OutcomeKind.EXPIRED, init=False)


@dataclass(frozen=True)
class SimulationFailed:
    signature: str
    reason: str
    logs: List[str] = field(default_factory=list)
    attempts: int = 0
    kind: OutcomeKind = field(default=OutcomeKind.SIMULATION_FAILED, init=False)


@dataclass(frozen=True)
class SendFailed:
    signature: str
    reason: str
    attempts: int = 1
    kind: OutcomeKind = field(default=OutcomeKind.SEND_FAILED, init=False)


@dataclass(frozen=True)
class Unknown:
    signature: str
    reason: str
    attempts: int = 0
    kind: OutcomeKind = field(default=OutcomeKind.UNKNOWN, init=False)


Outcome = Union[Confirmed, Expired, SimulationFailed, SendFailed, Unknown]


__all__ = [
    "SignedTransaction",
    "ExpiryWindow",
    "SubmissionAttempt",
    "SimulationResult",
    "ConfirmationStatus",
    "ConfirmationResult",
    "OutcomeKind",
    "Confirmed",
    "Expired",
    "SimulationFailed",
    "SendFailed",
    "Unknown",
    "Outcome",
]
