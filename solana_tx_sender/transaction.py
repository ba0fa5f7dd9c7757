import base64
import binascii
import logging
import struct
from typing import List, Union

import base58
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from .config import TransferSettings
from .exceptions import (
    InvalidPrivateKeyError,
    SwapError,
    TransactionBuildError,
    TransactionSignError,
)
from .models import ExpiryWindow, SignedTransaction

logger = logging.getLogger(__name__)

COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")


def load_keypair(secret: str) -> Keypair:
    """Decode a base58 64-byte secret key."""
    try:
        raw = base58.b58decode(secret.strip())
    except ValueError as e:
        raise InvalidPrivateKeyError("Private key is not valid base58") from e

    if len(raw) != 64:
        raise InvalidPrivateKeyError(
            f"Private key must decode to 64 bytes, got {len(raw)}",
        )
    try:
        return Keypair.from_bytes(raw)
    except ValueError as e:
        raise InvalidPrivateKeyError(f"Invalid private key: {e}") from e


def create_set_compute_unit_limit_instruction(units: int) -> Instruction:
    data = bytes([0x02]) + struct.pack("<I", units)
    return Instruction(
        program_id=COMPUTE_BUDGET_PROGRAM_ID,
        accounts=[],
        data=data
    )


def create_set_compute_unit_price_instruction(micro_lamports: int) -> Instruction:
    data = bytes([0x03]) + struct.pack("<Q", micro_lamports)
    return Instruction(
        program_id=COMPUTE_BUDGET_PROGRAM_ID,
        accounts=[],
        data=data
    )


def _as_hash(blockhash: Union[str, Hash]) -> Hash:
    if isinstance(blockhash, Hash):
        return blockhash
    return Hash.from_string(blockhash)


def build_self_transfer(
    payer: Keypair,
    blockhash: Union[str, Hash],
    settings: TransferSettings,
) -> VersionedTransaction:
    """Build and sign a V0 transaction moving lamports from the payer to itself."""
    instructions: List[Instruction] = [
        create_set_compute_unit_limit_instruction(settings.compute_unit_limit),
        create_set_compute_unit_price_instruction(settings.compute_unit_price),
        transfer(
            TransferParams(
                from_pubkey=payer.pubkey(),
                to_pubkey=payer.pubkey(),
                lamports=settings.lamports,
            )
        ),
    ]

    try:
        message = MessageV0.try_compile(
            payer=payer.pubkey(),
            instructions=instructions,
            address_lookup_table_accounts=[],
            recent_blockhash=_as_hash(blockhash),
        )
    except Exception as e:
        raise TransactionBuildError(f"Failed to compile self transfer: {e}") from e

    return sign_message(message, payer)


def sign_message(message: MessageV0, keypair: Keypair) -> VersionedTransaction:
    """Sign a compiled message; `keypair` must be its only required signer."""
    try:
        return VersionedTransaction(message, [keypair])
    except Exception as e:
        raise TransactionSignError(f"Failed to sign versioned transaction: {e}") from e


def sign_versioned(tx: VersionedTransaction, keypair: Keypair) -> VersionedTransaction:
    """Re-sign `tx`, replacing any placeholder signatures."""
    return sign_message(tx.message, keypair)


def decode_swap_transaction(encoded: str) -> VersionedTransaction:
    """Deserialize a base64 swap transaction returned by the Jupiter API."""
    try:
        return VersionedTransaction.from_bytes(base64.b64decode(encoded, validate=True))
    except (binascii.Error, ValueError) as e:
        raise SwapError(f"Could not decode swap transaction: {e}") from e


def prepare(tx: VersionedTransaction, last_valid_block_height: int) -> tuple[SignedTransaction, ExpiryWindow]:
    """Freeze a signed transaction and derive its expiry window from its message."""
    signed = SignedTransaction.from_versioned(tx)
    expiry = ExpiryWindow(
        blockhash=str(tx.message.recent_blockhash),
        last_valid_block_height=last_valid_block_height,
    )
    logger.debug(
        f"Prepared {signed.signature} ({len(signed.raw)} bytes), "
        f"valid until block height {last_valid_block_height}"
    )
    return signed, expiry


__all__ = [
    "COMPUTE_BUDGET_PROGRAM_ID",
    "load_keypair",
    "create_set_compute_unit_limit_instruction",
    "create_set_compute_unit_price_instruction",
    "build_self_transfer",
    "sign_message",
    "sign_versioned",
    "decode_swap_transaction",
    "prepare",
]
