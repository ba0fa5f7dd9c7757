"""
Test fixtures: a scripted in-memory LedgerGateway.
"""

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from solana_tx_sender.config import BroadcastSettings
from solana_tx_sender.exceptions import TransactionSendError
from solana_tx_sender.gateway import LedgerGateway
from solana_tx_sender.models import (
    ConfirmationResult,
    ExpiryWindow,
    SignedTransaction,
    SimulationResult,
)

BLOCKHASH = "11111111111111111111111111111111"

# (delay in seconds, result); a delay of None means the watch never resolves.
WatchScript = Tuple[Optional[float], Optional[ConfirmationResult]]


class FakeGateway(LedgerGateway):
    """Records every call and replays scripted ledger behaviour."""

    def __init__(
        self,
        simulation: Optional[SimulationResult] = None,
        simulate_error: Optional[Exception] = None,
        broadcast_errors: Optional[Dict[int, Exception]] = None,
        heights: Sequence[int] = (100,),
        height_errors: Optional[Dict[int, Exception]] = None,
        watches: Sequence[WatchScript] = ((None, None),),
    ):
        self.simulation = simulation or SimulationResult(success=True, units_consumed=450)
        self.simulate_error = simulate_error
        self.broadcast_errors = broadcast_errors or {}
        self.heights = list(heights)
        self.height_errors = height_errors or {}
        self.watches = list(watches)

        self.simulations = 0
        self.broadcasts: List[bytes] = []
        self.skip_preflight_flags: List[bool] = []
        self.height_calls = 0
        self.subscriptions = 0
        self.active_watches = 0

    async def simulate(self, tx: SignedTransaction) -> SimulationResult:
        self.simulations += 1
        if self.simulate_error is not None:
            raise self.simulate_error
        return self.simulation

    async def broadcast(self, tx: SignedTransaction, skip_preflight: bool = True) -> str:
        self.broadcasts.append(tx.raw)
        self.skip_preflight_flags.append(skip_preflight)
        error = self.broadcast_errors.get(len(self.broadcasts))
        if error is not None:
            raise error
        return tx.signature

    async def current_height(self) -> int:
        self.height_calls += 1
        error = self.height_errors.get(self.height_calls)
        if error is not None:
            raise error
        return self.heights[min(self.height_calls, len(self.heights)) - 1]

    async def get_expiry_window(self) -> ExpiryWindow:
        return ExpiryWindow(blockhash=BLOCKHASH, last_valid_block_height=150)

    async def _watch_confirmation(
        self,
        signature: str,
        expiry: ExpiryWindow,
    ) -> ConfirmationResult:
        self.subscriptions += 1
        self.active_watches += 1
        delay, result = self.watches[min(self.subscriptions, len(self.watches)) - 1]
        try:
            if delay is None:
                await asyncio.Event().wait()
            await asyncio.sleep(delay)
            return result
        finally:
            self.active_watches -= 1


def send_error(message: str = "connection reset") -> TransactionSendError:
    return TransactionSendError(message)


@pytest.fixture
def signed_tx() -> SignedTransaction:
    return SignedTransaction(
        raw=b"\x01" + bytes(range(64)) + b"signed-message",
        signature="5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW",
    )


@pytest.fixture
def expiry() -> ExpiryWindow:
    return ExpiryWindow(blockhash=BLOCKHASH, last_valid_block_height=150)


@pytest.fixture
def fast_settings() -> BroadcastSettings:
    return BroadcastSettings(resend_interval_ms=20, status_poll_interval_ms=10)
