"""
Tests for the full transaction lifecycle run by BroadcastSupervisor.
"""

import asyncio

import pytest

from solana_tx_sender.config import BroadcastSettings
from solana_tx_sender.exceptions import TransactionSimulationError
from solana_tx_sender.models import (
    ConfirmationResult,
    Confirmed,
    Expired,
    SendFailed,
    SimulationFailed,
    SimulationResult,
    Unknown,
)
from solana_tx_sender.race import ConfirmationRace
from solana_tx_sender.supervisor import BroadcastSupervisor

from conftest import FakeGateway, send_error


@pytest.mark.asyncio
async def test_confirmed_before_resend_interval(signed_tx, expiry):
    gateway = FakeGateway(watches=[(0.05, ConfirmationResult.confirmed(slot=42, confirmation_status="confirmed"))])
    supervisor = BroadcastSupervisor(gateway, BroadcastSettings(resend_interval_ms=2000))

    outcome = await supervisor.run(signed_tx, expiry)

    assert isinstance(outcome, Confirmed)
    assert outcome.signature == signed_tx.signature
    assert outcome.slot == 42
    assert len(gateway.broadcasts) == 1


@pytest.mark.asyncio
async def test_expired_after_three_resends(signed_tx, expiry, fast_settings):
    gateway = FakeGateway(heights=[100, 100, 100, 200])

    outcome = await BroadcastSupervisor(gateway, fast_settings).run(signed_tx, expiry)

    assert isinstance(outcome, Expired)
    assert len(gateway.broadcasts) == 4
    assert outcome.attempts == 4
    assert all(raw == signed_tx.raw for raw in gateway.broadcasts)
    assert gateway.subscriptions == 1


@pytest.mark.asyncio
async def test_simulation_error_prevents_broadcast(signed_tx, expiry, fast_settings):
    gateway = FakeGateway(
        simulation=SimulationResult(
            success=False,
            error="InstructionError(2, Custom(6001))",
            logs=["Program log: slippage tolerance exceeded"],
        ),
    )

    outcome = await BroadcastSupervisor(gateway, fast_settings).run(signed_tx, expiry)

    assert isinstance(outcome, SimulationFailed)
    assert outcome.reason == "InstructionError(2, Custom(6001))"
    assert outcome.logs == ["Program log: slippage tolerance exceeded"]
    assert gateway.broadcasts == []
    assert gateway.subscriptions == 0


@pytest.mark.asyncio
async def test_simulation_request_failure_prevents_broadcast(signed_tx, expiry, fast_settings):
    gateway = FakeGateway(simulate_error=TransactionSimulationError("Simulation request failed: 503"))

    outcome = await BroadcastSupervisor(gateway, fast_settings).run(signed_tx, expiry)

    assert isinstance(outcome, SimulationFailed)
    assert outcome.reason.startswith("simulation request failed: ")
    assert "503" in outcome.reason
    assert outcome.logs == []
    assert gateway.broadcasts == []


@pytest.mark.asyncio
async def test_initial_send_failure_skips_race(signed_tx, expiry, fast_settings):
    gateway = FakeGateway(broadcast_errors={1: send_error("connection refused")})
    supervisor = BroadcastSupervisor(gateway, fast_settings)

    outcome = await supervisor.run(signed_tx, expiry)

    assert isinstance(outcome, SendFailed)
    assert outcome.reason == "connection refused"
    assert len(gateway.broadcasts) == 1
    assert gateway.subscriptions == 0
    assert supervisor.race is None


@pytest.mark.asyncio
async def test_initial_send_skips_preflight(signed_tx, expiry, fast_settings):
    gateway = FakeGateway(watches=[(0.0, ConfirmationResult.confirmed(slot=1))])

    await BroadcastSupervisor(gateway, fast_settings).run(signed_tx, expiry)

    assert gateway.skip_preflight_flags == [True]
    assert gateway.simulations == 1


@pytest.mark.asyncio
async def test_unexpected_error_becomes_unknown(signed_tx, expiry, fast_settings, monkeypatch):
    async def broken_run(self, tx, expiry, first_sent_at=None):
        raise RuntimeError("event loop is closing")

    monkeypatch.setattr(ConfirmationRace, "run", broken_run)
    gateway = FakeGateway()

    outcome = await BroadcastSupervisor(gateway, fast_settings).run(signed_tx, expiry)

    assert isinstance(outcome, Unknown)
    assert "event loop is closing" in outcome.reason


@pytest.mark.asyncio
async def test_watch_error_reported_as_unknown(signed_tx, expiry, fast_settings):
    gateway = FakeGateway(watches=[(0.03, ConfirmationResult.failed("connection dropped"))])

    outcome = await BroadcastSupervisor(gateway, fast_settings).run(signed_tx, expiry)

    assert isinstance(outcome, Unknown)
    assert outcome.attempts >= 1


@pytest.mark.asyncio
async def test_reported_simulation_error_has_no_request_prefix(signed_tx, expiry, fast_settings):
    gateway = FakeGateway(simulation=SimulationResult(success=False, error="AccountNotFound"))

    outcome = await BroadcastSupervisor(gateway, fast_settings).run(signed_tx, expiry)

    assert outcome.reason == "AccountNotFound"


@pytest.mark.asyncio
async def test_submission_is_tracked_through_cancellation(signed_tx, expiry, fast_settings):
    gateway = FakeGateway(heights=[100])
    supervisor = BroadcastSupervisor(gateway, fast_settings)
    task = asyncio.create_task(supervisor.run(signed_tx, expiry))

    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert supervisor.submitted
    assert supervisor.attempt_count == len(gateway.broadcasts)
    assert gateway.active_watches == 0


@pytest.mark.asyncio
async def test_nothing_submitted_after_failed_simulation(signed_tx, expiry, fast_settings):
    gateway = FakeGateway(simulation=SimulationResult(success=False, error="AccountNotFound"))
    supervisor = BroadcastSupervisor(gateway, fast_settings)

    await supervisor.run(signed_tx, expiry)

    assert not supervisor.submitted
    assert supervisor.attempt_count == 0
