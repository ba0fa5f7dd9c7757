"""
Tests for the Jupiter quote and swap client.
"""

from unittest.mock import AsyncMock

import pytest

from solana_tx_sender.config import JupiterSettings
from solana_tx_sender.exceptions import JupiterAPIError, QuoteError, SwapError
from solana_tx_sender.jupiter import JupiterClient, SwapQuote, SwapTransaction
from solana_tx_sender.retry import RetryConfig

SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

QUOTE = {
    "inputMint": SOL,
    "outputMint": USDC,
    "inAmount": "1000",
    "outAmount": "153",
    "slippageBps": 50,
    "priceImpactPct": "0.001",
}

NO_DELAY = RetryConfig(
    max_retries=2,
    base_delay=0.0,
    max_delay=0.0,
    jitter=False,
    retry_status_codes={429, 500, 502, 503, 504},
)


def api_error(status: int) -> JupiterAPIError:
    return JupiterAPIError(
        f"Jupiter GET returned {status}",
        status_code=status,
        is_recoverable=status in NO_DELAY.retry_status_codes,
    )


@pytest.fixture
def jupiter() -> JupiterClient:
    client = JupiterClient(JupiterSettings(), retry_config=NO_DELAY)
    client._request_once = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_get_quote_sends_configured_params(jupiter):
    jupiter._request_once.return_value = QUOTE

    quote = await jupiter.get_quote()

    method, url, params, body = jupiter._request_once.call_args.args
    assert method == "GET"
    assert url == "https://quote-api.jup.ag/v6/quote"
    assert params == {
        "inputMint": SOL,
        "outputMint": USDC,
        "amount": "1000",
        "slippageBps": "50",
    }
    assert body is None
    assert quote.in_amount == 1000
    assert quote.out_amount == 153
    assert quote.raw_response is QUOTE


@pytest.mark.asyncio
async def test_server_error_is_retried(jupiter):
    jupiter._request_once.side_effect = [api_error(500), QUOTE]

    quote = await jupiter.get_quote()

    assert quote.out_amount == 153
    assert jupiter._request_once.call_count == 2


@pytest.mark.asyncio
async def test_client_error_is_not_retried(jupiter):
    jupiter._request_once.side_effect = api_error(400)

    with pytest.raises(QuoteError) as exc_info:
        await jupiter.get_quote()

    assert jupiter._request_once.call_count == 1
    assert exc_info.value.input_mint == SOL


@pytest.mark.asyncio
async def test_swap_request_body(jupiter):
    jupiter._request_once.return_value = {
        "swapTransaction": "AQID",
        "lastValidBlockHeight": 279632475,
        "prioritizationFeeLamports": 1,
    }
    quote = SwapQuote.from_dict(QUOTE)

    swap = await jupiter.get_swap_transaction(quote, "UserPubkey1111111111111111111111111111111111")

    method, url, params, body = jupiter._request_once.call_args.args
    assert method == "POST"
    assert url.endswith("/swap")
    assert body["quoteResponse"] == QUOTE
    assert body["userPublicKey"] == "UserPubkey1111111111111111111111111111111111"
    assert body["wrapAndUnwrapSol"] is True
    assert body["dynamicComputeUnitLimit"] is True
    assert body["prioritizationFeeLamports"] == 1
    assert swap.last_valid_block_height == 279632475


@pytest.mark.asyncio
async def test_swap_failure_is_wrapped(jupiter):
    jupiter._request_once.side_effect = api_error(503)

    with pytest.raises(SwapError):
        await jupiter.get_swap_transaction(SwapQuote.from_dict(QUOTE), "UserPubkey")

    assert jupiter._request_once.call_count == 3


@pytest.mark.parametrize(
    "data",
    [
        {"lastValidBlockHeight": 1},
        {"swapTransaction": "AQID"},
    ],
)
def test_swap_transaction_requires_fields(data):
    with pytest.raises(SwapError):
        SwapTransaction.from_dict(data)
