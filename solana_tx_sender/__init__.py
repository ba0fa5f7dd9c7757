"""
Solana Transaction Sender

Sends a signed transaction and keeps resending the identical bytes until the
network confirms it or its blockhash expires.
"""

__version__ = "1.0.0"

from .config import BroadcastSettings, ConfirmationLevel, Settings, get_settings
from .gateway import LedgerGateway, SolanaGateway
from .models import (
    Confirmed,
    Expired,
    ExpiryWindow,
    Outcome,
    OutcomeKind,
    SendFailed,
    SignedTransaction,
    SimulationFailed,
    Unknown,
)
from .race import ConfirmationRace
from .reporter import OutcomeReporter
from .supervisor import BroadcastSupervisor

__all__ = [
    "BroadcastSettings",
    "ConfirmationLevel",
    "Settings",
    "get_settings",
    "LedgerGateway",
    "SolanaGateway",
    "SignedTransaction",
    "ExpiryWindow",
    "Outcome",
    "OutcomeKind",
    "Confirmed",
    "Expired",
    "SimulationFailed",
    "SendFailed",
    "Unknown",
    "ConfirmationRace",
    "BroadcastSupervisor",
    "OutcomeReporter",
]
