"""
Ledger gateway - the narrow interface the broadcast engine talks to.

LedgerGateway defines the operations the supervisor and the confirmation
race consume. SolanaGateway implements them on top of the async Solana RPC
client with transport-level retries disabled, so retransmission policy stays
with the confirmation race.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.types import TxOpts
from solders.signature import Signature

from .config import BroadcastSettings, ConfirmationLevel, SolanaRPCSettings
from .exceptions import (
    BlockhashNotFoundError,
    RPCResponseError,
    TransactionSendError,
    TransactionSimulationError,
    wrap_exception,
)
from .models import (
    ConfirmationResult,
    ExpiryWindow,
    SignedTransaction,
    SimulationResult,
)
from .retry import RPC_READ_RETRY_POLICY, async_retry

logger = logging.getLogger(__name__)


class ConfirmationSubscription:
    """
    Handle on a running confirmation watch.

    Wraps the single task that resolves to a ConfirmationResult. The task is
    owned by the gateway context manager that created it and is cancelled
    when that context exits.
    """

    def __init__(self, signature: str, task: "asyncio.Task[ConfirmationResult]"):
        self.signature = signature
        self.task = task

    def done(self) -> bool:
        return self.task.done()

    def result(self) -> ConfirmationResult:
        """Return the resolved value; a crashed or cancelled watch becomes an error result."""
        if self.task.cancelled():
            return ConfirmationResult.failed("confirmation watch was cancelled")
        exc = self.task.exception()
        if exc is not None:
            return ConfirmationResult.failed(f"confirmation watch failed: {exc}")
        return self.task.result()

    async def cancel(self) -> None:
        if not self.task.done():
            self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Confirmation watch for {self.signature} ended with {e!r}")


class LedgerGateway(ABC):
    """Operations the broadcast engine needs from the ledger."""

    @abstractmethod
    async def simulate(self, tx: SignedTransaction) -> SimulationResult:
        """Dry-run the transaction against current state. Must not mutate the ledger."""

    @abstractmethod
    async def broadcast(self, tx: SignedTransaction, skip_preflight: bool = True) -> str:
        """
        Hand the raw bytes to the network once, with transport retries disabled.

        Returns the signature reported by the node. Raises TransactionSendError
        on any transport or RPC failure.
        """

    @abstractmethod
    async def current_height(self) -> int:
        """Current block height used for expiry comparison."""

    @abstractmethod
    async def get_expiry_window(self) -> ExpiryWindow:
        """Latest blockhash and the last block height it is valid for."""

    @abstractmethod
    async def _watch_confirmation(
        self,
        signature: str,
        expiry: ExpiryWindow,
    ) -> ConfirmationResult:
        """Body of a confirmation watch; runs as one task until it resolves."""

    @asynccontextmanager
    async def subscribe_confirmation(
        self,
        signature: str,
        expiry: ExpiryWindow,
    ) -> AsyncIterator[ConfirmationSubscription]:
        """
        Start one confirmation watch for `signature`.

        The watch is torn down on every exit path of the `async with` block.
        """
        task = asyncio.create_task(
            self._watch_confirmation(signature, expiry),
            name=f"confirm-{signature[:12]}",
        )
        subscription = ConfirmationSubscription(signature, task)
        try:
            yield subscription
        finally:
            await subscription.cancel()


class SolanaGateway(LedgerGateway):
    """
    LedgerGateway backed by solana-py's AsyncClient.

    The client is shared between the confirmation watch and the broadcasts;
    AsyncClient tolerates concurrent in-flight requests.
    """

    def __init__(
        self,
        client: AsyncClient,
        settings: Optional[BroadcastSettings] = None,
        read_commitment: ConfirmationLevel = ConfirmationLevel.CONFIRMED,
    ):
        self.client = client
        self.settings = settings or BroadcastSettings()
        self.read_commitment = Commitment(read_commitment.value)

    @classmethod
    def from_settings(
        cls,
        rpc: SolanaRPCSettings,
        broadcast: BroadcastSettings,
    ) -> "SolanaGateway":
        client = AsyncClient(
            rpc.endpoint,
            commitment=Commitment(rpc.commitment.value),
            timeout=rpc.timeout,
        )
        return cls(client, broadcast, read_commitment=rpc.commitment)

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> "SolanaGateway":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    @property
    def confirmation_level(self) -> ConfirmationLevel:
        return self.settings.confirmation_level

    async def simulate(self, tx: SignedTransaction) -> SimulationResult:
        try:
            response = await self.client.simulate_transaction(
                tx.to_versioned(),
                sig_verify=False,
                commitment=self.read_commitment,
            )
        except Exception as e:
            raise wrap_exception(
                e,
                TransactionSimulationError,
                message=f"Simulation request failed: {e}",
                transaction_signature=tx.signature,
            ) from e

        result = response.value
        if result is None:
            return SimulationResult(success=False, error="Empty simulation response")

        return SimulationResult(
            success=result.err is None,
            error=str(result.err) if result.err is not None else None,
            logs=list(result.logs or []),
            units_consumed=result.units_consumed,
        )

    async def broadcast(self, tx: SignedTransaction, skip_preflight: bool = True) -> str:
        opts = TxOpts(
            skip_confirmation=True,
            skip_preflight=skip_preflight,
            preflight_commitment=self.read_commitment,
            max_retries=0,
        )
        try:
            response = await self.client.send_raw_transaction(tx.raw, opts=opts)
        except Exception as e:
            raise wrap_exception(
                e,
                TransactionSendError,
                message=f"Failed to send transaction: {e}",
                transaction_signature=tx.signature,
            ) from e

        if response.value is None:
            raise TransactionSendError(
                "Empty response from sendTransaction",
                transaction_signature=tx.signature,
            )
        return str(response.value)

    async def current_height(self) -> int:
        try:
            response = await self.client.get_block_height(self.read_commitment)
        except Exception as e:
            raise wrap_exception(e, RPCResponseError, message=f"getBlockHeight failed: {e}") from e
        return response.value

    @async_retry(RPC_READ_RETRY_POLICY)
    async def get_expiry_window(self) -> ExpiryWindow:
        try:
            response = await self.client.get_latest_blockhash(self.read_commitment)
        except Exception as e:
            raise wrap_exception(e, RPCResponseError, message=f"getLatestBlockhash failed: {e}") from e

        if not response.value:
            raise BlockhashNotFoundError("Failed to get recent blockhash")

        window = ExpiryWindow(
            blockhash=str(response.value.blockhash),
            last_valid_block_height=response.value.last_valid_block_height,
        )
        logger.debug(f"Fetched blockhash {window.blockhash} valid until {window.last_valid_block_height}")
        return window

    async def _fetch_status(self, signature: Signature) -> Optional[ConfirmationResult]:
        """Return a confirmed result once the signature reaches the configured level."""
        response = await self.client.get_signature_statuses([signature])
        if not response.value or response.value[0] is None:
            return None

        status = response.value[0]
        if not self.confirmation_level.is_reached_by(status.confirmation_status):
            return None

        return ConfirmationResult.confirmed(
            slot=status.slot,
            confirmation_status=ConfirmationLevel.from_status(status.confirmation_status).value,
            execution_error=str(status.err) if status.err is not None else None,
        )

    async def _watch_confirmation(
        self,
        signature: str,
        expiry: ExpiryWindow,
    ) -> ConfirmationResult:
        sig = Signature.from_string(signature)
        failures = 0

        while True:
            try:
                confirmed = await self._fetch_status(sig)
                if confirmed is not None:
                    return confirmed

                height = await self.current_height()
                if expiry.is_expired(height):
                    # The transaction may have landed in the last valid block.
                    confirmed = await self._fetch_status(sig)
                    if confirmed is not None:
                        return confirmed
                    return ConfirmationResult.expired(
                        f"block height {height} exceeded last valid block height "
                        f"{expiry.last_valid_block_height}"
                    )
                failures = 0

            except Exception as e:
                failures += 1
                logger.warning(
                    f"Signature status check failed for {signature} "
                    f"({failures}/{self.settings.max_status_poll_failures}): {e}"
                )
                if failures >= self.settings.max_status_poll_failures:
                    return ConfirmationResult.failed(
                        f"status polling failed {failures} times in a row: {e}"
                    )

            await asyncio.sleep(self.settings.status_poll_interval)


__all__ = [
    "ConfirmationSubscription",
    "LedgerGateway",
    "SolanaGateway",
]
