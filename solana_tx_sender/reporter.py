"""
Outcome reporter - renders a terminal Outcome for a human and picks the exit code.
"""

import logging
from typing import Optional

from .config import Network, SolanaRPCSettings
from .models import (
    Confirmed,
    Expired,
    Outcome,
    SendFailed,
    SimulationFailed,
    Unknown,
)

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_UNKNOWN = 2


class OutcomeReporter:

    def __init__(
        self,
        network: Network = Network.MAINNET,
        explorer_host: str = "solana.com",
        log: Optional[logging.Logger] = None,
    ):
        self.network = network
        self.explorer_host = explorer_host
        self.log = log or logger

    @classmethod
    def from_settings(cls, rpc: SolanaRPCSettings) -> "OutcomeReporter":
        return cls(network=rpc.network, explorer_host=rpc.explorer_host)

    def explorer_url(self, signature: str) -> str:
        url = f"https://explorer.{self.explorer_host}/tx/{signature}"
        if self.network != Network.MAINNET:
            url += f"?cluster={self.network.value}"
        return url

    def render(self, outcome: Outcome) -> str:
        if isinstance(outcome, Confirmed):
            if outcome.execution_error:
                return (
                    f"Transaction {outcome.signature} landed in slot {outcome.slot} "
                    f"but failed: {outcome.execution_error}"
                )
            return f"Transaction successful: {outcome.signature} (slot {outcome.slot})"
        if isinstance(outcome, Expired):
            return (
                f"Transaction {outcome.signature} expired after {outcome.attempts} "
                f"send attempts: {outcome.reason}"
            )
        if isinstance(outcome, SimulationFailed):
            return f"Transaction simulation failed for {outcome.signature}: {outcome.reason}"
        if isinstance(outcome, SendFailed):
            return f"Transaction {outcome.signature} could not be sent: {outcome.reason}"
        if isinstance(outcome, Unknown):
            return (
                f"Transaction {outcome.signature} status unknown, it may still land: "
                f"{outcome.reason}"
            )
        raise TypeError(f"Not an outcome: {outcome!r}")

    @staticmethod
    def exit_code(outcome: Outcome) -> int:
        if isinstance(outcome, Confirmed) and not outcome.execution_error:
            return EXIT_SUCCESS
        if isinstance(outcome, Unknown):
            return EXIT_UNKNOWN
        return EXIT_FAILURE

    def report(self, outcome: Outcome) -> int:
        """Log the outcome and return the process exit code for it."""
        message = self.render(outcome)
        code = self.exit_code(outcome)

        if code == EXIT_SUCCESS:
            self.log.info(message)
            self.log.info(f"Explorer URL: {self.explorer_url(outcome.signature)}")
        else:
            self.log.error(message)
            if isinstance(outcome, Confirmed):
                self.log.info(f"Explorer URL: {self.explorer_url(outcome.signature)}")
            self.log.error("Transaction failed")
        return code


__all__ = ["OutcomeReporter", "EXIT_SUCCESS", "EXIT_FAILURE", "EXIT_UNKNOWN"]
