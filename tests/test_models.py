"""
Tests for the shared value types.
"""

import dataclasses

import pytest

from solana_tx_sender.models import (
    ConfirmationResult,
    ConfirmationStatus,
    Confirmed,
    Expired,
    ExpiryWindow,
    OutcomeKind,
    SendFailed,
    SignedTransaction,
    SimulationFailed,
    SubmissionAttempt,
    Unknown,
)


def test_signed_transaction_rejects_empty_bytes():
    with pytest.raises(ValueError):
        SignedTransaction(raw=b"", signature="sig")


def test_signed_transaction_rejects_empty_signature():
    with pytest.raises(ValueError):
        SignedTransaction(raw=b"\x01", signature="")


def test_signed_transaction_is_immutable(signed_tx):
    with pytest.raises(dataclasses.FrozenInstanceError):
        signed_tx.raw = b"other"


def test_signed_transaction_repr_hides_bytes(signed_tx):
    text = repr(signed_tx)
    assert signed_tx.signature in text
    assert f"size={len(signed_tx.raw)}" in text


@pytest.mark.parametrize(
    "height, expired",
    [(149, False), (150, False), (151, True)],
)
def test_expiry_boundary(height, expired):
    window = ExpiryWindow(blockhash="11111111111111111111111111111111", last_valid_block_height=150)
    assert window.is_expired(height) is expired


def test_submission_attempt_numbering_starts_at_one():
    with pytest.raises(ValueError):
        SubmissionAttempt(attempt_number=0)

    attempt = SubmissionAttempt(attempt_number=1)
    assert attempt.succeeded
    assert attempt.sent_at.tzinfo is not None
    assert not SubmissionAttempt(attempt_number=2, error="timeout").succeeded


def test_confirmation_result_constructors():
    assert ConfirmationResult.confirmed(slot=5).status == ConfirmationStatus.CONFIRMED
    expired = ConfirmationResult.expired("block height exceeded")
    assert expired.status == ConfirmationStatus.EXPIRED
    assert expired.error == "block height exceeded"
    assert ConfirmationResult.failed("boom").status == ConfirmationStatus.ERROR


def test_outcome_kinds():
    assert Confirmed(signature="s").kind == OutcomeKind.CONFIRMED
    assert Expired(signature="s").kind == OutcomeKind.EXPIRED
    assert SimulationFailed(signature="s", reason="r").kind == OutcomeKind.SIMULATION_FAILED
    assert SendFailed(signature="s", reason="r").kind == OutcomeKind.SEND_FAILED
    assert Unknown(signature="s", reason="r").kind == OutcomeKind.UNKNOWN


def test_outcome_kind_is_not_constructor_argument():
    with pytest.raises(TypeError):
        Confirmed(signature="s", kind=OutcomeKind.EXPIRED)
