"""
Jupiter swap API client.

Fetches a quote and the matching unsigned swap transaction. The transaction
is signed locally and handed to the broadcast engine like any other.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from .config import JupiterSettings
from .exceptions import JupiterAPIError, QuoteError, SwapError
from .retry import JUPITER_RETRY_POLICY, RetryConfig, RetryContext

logger = logging.getLogger(__name__)


@dataclass
class SwapQuote:
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    slippage_bps: int
    price_impact_pct: float = 0.0
    raw_response: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapQuote":
        return cls(
            input_mint=data.get("inputMint", ""),
            output_mint=data.get("outputMint", ""),
            in_amount=int(data.get("inAmount", 0)),
            out_amount=int(data.get("outAmount", 0)),
            slippage_bps=int(data.get("slippageBps", 0)),
            price_impact_pct=float(data.get("priceImpactPct", 0) or 0),
            raw_response=data,
        )


@dataclass
class SwapTransaction:
    """Swap transaction ready for signing."""
    swap_transaction: str  # Base64 encoded transaction
    last_valid_block_height: int
    priority_fee_lamports: int = 0
    compute_unit_limit: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapTransaction":
        if not data.get("swapTransaction"):
            raise SwapError("Swap response has no swapTransaction")
        if not data.get("lastValidBlockHeight"):
            raise SwapError("Swap response has no lastValidBlockHeight")
        return cls(
            swap_transaction=data["swapTransaction"],
            last_valid_block_height=int(data["lastValidBlockHeight"]),
            priority_fee_lamports=int(data.get("prioritizationFeeLamports", 0) or 0),
            compute_unit_limit=data.get("computeUnitLimit"),
        )


class JupiterClient:
    """
    Async Jupiter client.

    Example:
        async with JupiterClient(settings.jupiter) as jupiter:
            quote = await jupiter.get_quote()
            swap = await jupiter.get_swap_transaction(quote, str(keypair.pubkey()))
    """

    def __init__(
        self,
        settings: Optional[JupiterSettings] = None,
        retry_config: RetryConfig = JUPITER_RETRY_POLICY,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings or JupiterSettings()
        self.api_base = self.settings.base_url
        self.retry_config = retry_config
        self._session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()

    async def __aenter__(self) -> "JupiterClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.settings.timeout),
                    headers={
                        "Accept": "application/json",
                        "Content-Type": "application/json",
                    },
                )
                self._owns_session = True
            return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _request_once(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        session = await self._ensure_session()
        logger.debug(f"Request {method} {url} params={params}")

        async with session.request(method, url, params=params, json=json_data) as response:
            if not 200 <= response.status < 300:
                body = await response.text()
                raise JupiterAPIError(
                    f"Jupiter {method} {url} returned {response.status}",
                    status_code=response.status,
                    api_error_message=body[:500],
                    is_recoverable=response.status in self.retry_config.retry_status_codes,
                )
            return await response.json()

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        async with RetryContext(self.retry_config) as ctx:
            return await ctx.execute(self._request_once, method, url, params, json_data)

    async def get_quote(
        self,
        input_mint: Optional[str] = None,
        output_mint: Optional[str] = None,
        amount: Optional[int] = None,
        slippage_bps: Optional[int] = None,
    ) -> SwapQuote:
        params = {
            "inputMint": input_mint or self.settings.input_mint,
            "outputMint": output_mint or self.settings.output_mint,
            "amount": str(amount or self.settings.amount),
            "slippageBps": str(slippage_bps or self.settings.slippage_bps),
        }
        logger.info("Fetching jupiter swap quote")
        try:
            data = await self._request("GET", f"{self.api_base}/quote", params=params)
        except Exception as e:
            raise QuoteError(
                f"Failed to fetch jupiter swap quote: {e}",
                input_mint=params["inputMint"],
                output_mint=params["outputMint"],
                amount=int(params["amount"]),
            ) from e

        quote = SwapQuote.from_dict(data)
        logger.info(f"Fetched jupiter swap quote: {quote.in_amount} -> {quote.out_amount}")
        return quote

    async def get_swap_transaction(
        self,
        quote: SwapQuote,
        user_public_key: str,
        priority_fee_lamports: Optional[int] = None,
    ) -> SwapTransaction:
        body: Dict[str, Any] = {
            "quoteResponse": quote.raw_response,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            # Let the API size the compute unit limit for the route.
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": (
                priority_fee_lamports
                if priority_fee_lamports is not None
                else self.settings.priority_fee_lamports
            ),
        }
        logger.info("Fetching jupiter swap transaction")
        try:
            data = await self._request("POST", f"{self.api_base}/swap", json_data=body)
        except Exception as e:
            raise SwapError(f"Failed to fetch jupiter swap transaction: {e}") from e

        swap = SwapTransaction.from_dict(data)
        logger.info("Fetched jupiter swap transaction")
        return swap


__all__ = ["SwapQuote", "SwapTransaction", "JupiterClient"]
