"""
Broadcast supervisor - drives one signed transaction to a terminal Outcome.

    simulate -> initial broadcast -> ConfirmationRace -> Outcome

Every failure along the way is converted into an Outcome value; nothing but
task cancellation escapes `run`.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from .config import BroadcastSettings
from .exceptions import SolanaSenderError
from .gateway import LedgerGateway
from .models import (
    ExpiryWindow,
    Outcome,
    SendFailed,
    SignedTransaction,
    SimulationFailed,
    Unknown,
)
from .race import ConfirmationRace

logger = logging.getLogger(__name__)


def _reason(error: Exception) -> str:
    if isinstance(error, SolanaSenderError):
        return error.message
    return str(error) or type(error).__name__


class BroadcastSupervisor:
    """
    Runs the full lifecycle of a single transaction.

    Usage:
        supervisor = BroadcastSupervisor(gateway, settings.broadcast)
        outcome = await supervisor.run(signed_tx, expiry)
    """

    def __init__(self, gateway: LedgerGateway, settings: Optional[BroadcastSettings] = None):
        self.gateway = gateway
        self.settings = settings or BroadcastSettings()
        self.race: Optional[ConfirmationRace] = None
        # Set once the bytes may have reached the network.
        self.submitted = False

    @property
    def attempt_count(self) -> int:
        if self.race is not None:
            return self.race.attempt_count
        return 1 if self.submitted else 0

    async def run(self, tx: SignedTransaction, expiry: ExpiryWindow) -> Outcome:
        try:
            return await self._run(tx, expiry)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error while sending {tx.signature}")
            return Unknown(
                tx.signature,
                reason=f"unexpected error: {_reason(e)}",
                attempts=self.attempt_count,
            )

    async def _run(self, tx: SignedTransaction, expiry: ExpiryWindow) -> Outcome:
        self.race = None
        self.submitted = False

        logger.info(f"Simulating transaction {tx.signature}")
        try:
            simulation = await self.gateway.simulate(tx)
        except Exception as e:
            # No verdict on the transaction itself; the reason prefix keeps this
            # apart from a simulation that ran and reported an error.
            logger.error(f"Transaction simulation could not be performed: {e}")
            return SimulationFailed(tx.signature, reason=f"simulation request failed: {_reason(e)}")

        if not simulation.success:
            logger.error(f"Transaction simulation failed with error {simulation.error}")
            for line in simulation.logs:
                logger.debug(f"  {line}")
            return SimulationFailed(
                tx.signature,
                reason=simulation.error or "simulation reported an execution error",
                logs=list(simulation.logs),
            )

        logger.info(
            f"Transaction simulation successful "
            f"(units consumed: {simulation.units_consumed})"
        )

        logger.info(f"Sending transaction {tx.signature}")
        first_sent_at = datetime.now(timezone.utc)
        self.submitted = True
        try:
            # Already simulated above, so the RPC node can skip its own preflight.
            await self.gateway.broadcast(tx, skip_preflight=True)
        except Exception as e:
            logger.error(f"Initial send of {tx.signature} failed: {e}")
            return SendFailed(tx.signature, reason=_reason(e), attempts=1)

        self.race = ConfirmationRace(self.gateway, self.settings)
        return await self.race.run(tx, expiry, first_sent_at=first_sent_at)


__all__ = ["BroadcastSupervisor"]
