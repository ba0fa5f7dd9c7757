"""
Confirmation race - resend an unconfirmed transaction until it lands or expires.

One confirmation watch is opened for the whole race. Each round waits for
either that watch to resolve or the resend interval to elapse. When the
interval wins, the expiry horizon is checked first and the identical
transaction bytes are sent again only if the transaction can still land.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .config import BroadcastSettings
from .gateway import ConfirmationSubscription, LedgerGateway
from .models import (
    ConfirmationResult,
    ConfirmationStatus,
    Confirmed,
    Expired,
    ExpiryWindow,
    Outcome,
    SignedTransaction,
    SubmissionAttempt,
    Unknown,
)

logger = logging.getLogger(__name__)


class ConfirmationRace:
    """
    Owns the resend loop for a single transaction.

    The race never re-signs: every retransmission is `tx.raw` as handed in.
    Attempt 1 is the initial send made by the caller; the race records it and
    appends one SubmissionAttempt per resend.
    """

    def __init__(self, gateway: LedgerGateway, settings: Optional[BroadcastSettings] = None):
        self.gateway = gateway
        self.settings = settings or BroadcastSettings()
        self._attempts: List[SubmissionAttempt] = []

    @property
    def attempts(self) -> Tuple[SubmissionAttempt, ...]:
        return tuple(self._attempts)

    @property
    def attempt_count(self) -> int:
        return len(self._attempts)

    async def run(
        self,
        tx: SignedTransaction,
        expiry: ExpiryWindow,
        first_sent_at: Optional[datetime] = None,
    ) -> Outcome:
        self._attempts = [
            SubmissionAttempt(
                attempt_number=1,
                sent_at=first_sent_at or datetime.now(timezone.utc),
            )
        ]
        deadline = self._deadline()
        resubscribes = 0

        logger.info(f"Subscribing to transaction confirmation for {tx.signature}")

        while True:
            async with self.gateway.subscribe_confirmation(tx.signature, expiry) as subscription:
                outcome = await self._race(tx, expiry, subscription, deadline)

            if not isinstance(outcome, Unknown):
                return outcome
            if resubscribes >= self.settings.max_resubscribe_attempts:
                return outcome

            expired_reason = await self._expiry_reason(expiry, deadline)
            if expired_reason:
                return Expired(tx.signature, reason=expired_reason, attempts=self.attempt_count)

            resubscribes += 1
            logger.warning(
                f"Confirmation watch for {tx.signature} failed ({outcome.reason}), "
                f"resubscribing ({resubscribes}/{self.settings.max_resubscribe_attempts})"
            )

    def _deadline(self) -> Optional[float]:
        if self.settings.timeout_seconds is None:
            return None
        return asyncio.get_running_loop().time() + self.settings.timeout_seconds

    def _next_wait(self, deadline: Optional[float]) -> float:
        interval = self.settings.resend_interval
        if deadline is None:
            return interval
        remaining = deadline - asyncio.get_running_loop().time()
        return max(0.0, min(interval, remaining))

    async def _race(
        self,
        tx: SignedTransaction,
        expiry: ExpiryWindow,
        subscription: ConfirmationSubscription,
        deadline: Optional[float],
    ) -> Outcome:
        while True:
            done, _ = await asyncio.wait({subscription.task}, timeout=self._next_wait(deadline))
            if done:
                return self._resolve(tx, subscription.result())

            expired_reason = await self._expiry_reason(expiry, deadline)
            if expired_reason:
                logger.warning(f"Transaction {tx.signature} expired: {expired_reason}")
                return Expired(tx.signature, reason=expired_reason, attempts=self.attempt_count)

            await self._resend(tx)

    async def _expiry_reason(
        self,
        expiry: ExpiryWindow,
        deadline: Optional[float],
    ) -> Optional[str]:
        if deadline is not None and asyncio.get_running_loop().time() >= deadline:
            return f"wall-clock timeout of {self.settings.timeout_seconds}s reached"

        try:
            height = await self.gateway.current_height()
        except Exception as e:
            # Unknown height: keep resending, the watch and the next round re-check.
            logger.warning(f"Could not read block height, skipping expiry check: {e}")
            return None

        if expiry.is_expired(height):
            return (
                f"block height {height} exceeded last valid block height "
                f"{expiry.last_valid_block_height}"
            )
        return None

    async def _resend(self, tx: SignedTransaction) -> None:
        attempt_number = self.attempt_count + 1
        elapsed_ms = int(
            (datetime.now(timezone.utc) - self._attempts[0].sent_at).total_seconds() * 1000
        )
        logger.info(
            f"Tx {tx.signature} not confirmed after {elapsed_ms}ms, "
            f"resending (attempt {attempt_number})"
        )

        sent_at = datetime.now(timezone.utc)
        error = None
        try:
            await self.gateway.broadcast(
                tx,
                skip_preflight=self.settings.skip_preflight_on_resend,
            )
        except Exception as e:
            error = str(e)
            logger.warning(f"Resend attempt {attempt_number} for {tx.signature} failed: {e}")

        self._attempts.append(
            SubmissionAttempt(attempt_number=attempt_number, sent_at=sent_at, error=error)
        )

    def _resolve(self, tx: SignedTransaction, result: ConfirmationResult) -> Outcome:
        if result.status == ConfirmationStatus.CONFIRMED:
            return Confirmed(
                signature=tx.signature,
                slot=result.slot,
                confirmation_status=result.confirmation_status,
                execution_error=result.execution_error,
                attempts=self.attempt_count,
            )
        if result.status == ConfirmationStatus.EXPIRED:
            return Expired(
                tx.signature,
                reason=result.error or "block height exceeded",
                attempts=self.attempt_count,
            )
        return Unknown(
            tx.signature,
            reason=result.error or "confirmation watch failed",
            attempts=self.attempt_count,
        )


__all__ = ["ConfirmationRace"]
