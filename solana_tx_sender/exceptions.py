"""
Exception hierarchy for the Solana transaction sender.

Each error carries an error code, a message, an optional context dict and an
is_recoverable flag. The read retry policy consults that flag; the broadcast
engine never lets these escape and turns them into Outcome values instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class SolanaSenderError(Exception):
    """
    Base exception for all sender errors.

    Attributes:
        message: Human-readable error description
        error_code: Identifier for the error type (e.g. "TX_003")
        context: Debugging details, such as the wrapped library error
        is_recoverable: Whether repeating the failed call may succeed
    """
    message: str
    error_code: str = "GENERAL_001"
    context: dict[str, Any] = field(default_factory=dict)
    is_recoverable: bool = False

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"[{self.error_code}] {self.message}"
        if self.context:
            text += " | Context: " + ", ".join(f"{k}={v}" for k, v in self.context.items())
        return text

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(error_code={self.error_code!r}, "
            f"message={self.message!r}, is_recoverable={self.is_recoverable})"
        )


@dataclass
class ConfigurationError(SolanaSenderError):
    """Settings are missing or invalid."""
    error_code: str = "CONFIG_001"


# =============================================================================
# TRANSACTION
# =============================================================================

@dataclass
class TransactionError(SolanaSenderError):
    error_code: str = "TX_000"
    transaction_signature: Optional[str] = None


@dataclass
class TransactionBuildError(TransactionError):
    error_code: str = "TX_001"


@dataclass
class TransactionSignError(TransactionError):
    error_code: str = "TX_002"


@dataclass
class TransactionSendError(TransactionError):
    """The node did not accept the transaction bytes."""
    error_code: str = "TX_003"
    is_recoverable: bool = True


@dataclass
class TransactionSimulationError(TransactionError):
    """The simulate request itself failed, so no verdict is available."""
    error_code: str = "TX_005"


# =============================================================================
# RPC
# =============================================================================

@dataclass
class RPCError(SolanaSenderError):
    error_code: str = "RPC_000"


@dataclass
class RPCResponseError(RPCError):
    """RPC call failed or returned an error."""
    error_code: str = "RPC_004"
    is_recoverable: bool = True


@dataclass
class BlockhashNotFoundError(RPCError):
    error_code: str = "RPC_008"
    is_recoverable: bool = True


# =============================================================================
# JUPITER
# =============================================================================

@dataclass
class JupiterError(SolanaSenderError):
    error_code: str = "JUP_000"


@dataclass
class QuoteError(JupiterError):
    error_code: str = "JUP_001"
    is_recoverable: bool = True
    input_mint: Optional[str] = None
    output_mint: Optional[str] = None
    amount: Optional[int] = None


@dataclass
class SwapError(JupiterError):
    """Swap transaction could not be fetched or decoded."""
    error_code: str = "JUP_002"


@dataclass
class JupiterAPIError(JupiterError):
    """Non-2xx response; recoverable only for the retryable status codes."""
    error_code: str = "JUP_007"
    is_recoverable: bool = True
    status_code: Optional[int] = None
    api_error_message: Optional[str] = None


# =============================================================================
# VALIDATION
# =============================================================================

@dataclass
class ValidationError(SolanaSenderError):
    error_code: str = "VAL_000"


@dataclass
class InvalidPrivateKeyError(ValidationError):
    error_code: str = "VAL_008"


def wrap_exception(
    original: Exception,
    wrapper_class: type[SolanaSenderError],
    message: Optional[str] = None,
    **kwargs: Any
) -> SolanaSenderError:
    """Wrap a library exception, keeping its type and text in the context."""
    context = kwargs.pop("context", {})
    context["original_error"] = type(original).__name__
    context["original_message"] = str(original)

    return wrapper_class(
        message=message or str(original) or type(original).__name__,
        context=context,
        **kwargs
    )


__all__ = [
    "SolanaSenderError", "ConfigurationError",
    "TransactionError", "TransactionBuildError", "TransactionSignError",
    "TransactionSendError", "TransactionSimulationError",
    "RPCError", "RPCResponseError", "BlockhashNotFoundError",
    "JupiterError", "QuoteError", "SwapError", "JupiterAPIError",
    "ValidationError", "InvalidPrivateKeyError",
    "wrap_exception",
]
