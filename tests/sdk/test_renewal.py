"""Unit tests for the renewal state machine and single-flight gate."""

from __future__ import annotations

import asyncio

import pytest

from packages.edudesk_sdk.renewal import (
    IllegalRenewalTransition,
    RenewalEvent,
    RenewalFailedError,
    RenewalGate,
    RenewalState,
    transition,
)


def test_transition_table_accepts_only_legal_moves() -> None:
    assert transition(RenewalState.IDLE, RenewalEvent.START) is RenewalState.IN_FLIGHT
    assert transition(RenewalState.IN_FLIGHT, RenewalEvent.SUCCEED) is RenewalState.IDLE
    assert transition(RenewalState.IN_FLIGHT, RenewalEvent.FAIL) is RenewalState.FAILED
    assert transition(RenewalState.FAILED, RenewalEvent.RESET) is RenewalState.IDLE

    with pytest.raises(IllegalRenewalTransition):
        transition(RenewalState.IN_FLIGHT, RenewalEvent.START)
    with pytest.raises(IllegalRenewalTransition):
        transition(RenewalState.FAILED, RenewalEvent.START)


def test_concurrent_callers_share_one_renewal() -> None:
    """Every caller arriving during IN_FLIGHT should await the same attempt."""
    calls = 0

    async def perform() -> str:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return "renewed"

    async def _run() -> tuple[list[str], RenewalGate]:
        gate = RenewalGate()
        results = await asyncio.gather(*(gate.renew(perform) for _ in range(5)))
        return list(results), gate

    results, gate = asyncio.run(_run())

    assert calls == 1
    assert results == ["renewed"] * 5
    assert gate.state is RenewalState.IDLE


def test_failed_renewal_runs_failure_hook_once_and_fails_all_waiters() -> None:
    failures = 0

    def on_failure() -> None:
        nonlocal failures
        failures += 1

    async def perform() -> str:
        await asyncio.sleep(0.01)
        raise RuntimeError("refresh rejected")

    async def _run() -> tuple[list[object], RenewalGate]:
        gate = RenewalGate(on_failure=on_failure)
        results = await asyncio.gather(
            *(gate.renew(perform) for _ in range(3)), return_exceptions=True
        )
        return list(results), gate

    results, gate = asyncio.run(_run())

    assert failures == 1
    assert all(isinstance(result, RuntimeError) for result in results)
    assert gate.state is RenewalState.FAILED


def test_failed_gate_rejects_until_reset() -> None:
    async def fail() -> str:
        raise RuntimeError("nope")

    async def succeed() -> str:
        return "fresh"

    async def _run() -> str:
        gate = RenewalGate()
        with pytest.raises(RuntimeError):
            await gate.renew(fail)
        with pytest.raises(RenewalFailedError):
            await gate.renew(succeed)
        gate.reset()
        assert gate.state is RenewalState.IDLE
        return await gate.renew(succeed)

    assert asyncio.run(_run()) == "fresh"


def test_cancelled_waiter_does_not_cancel_shared_renewal() -> None:
    async def perform() -> str:
        await asyncio.sleep(0.02)
        return "renewed"

    async def _run() -> tuple[str, RenewalState]:
        gate = RenewalGate()
        impatient = asyncio.create_task(gate.renew(perform))
        patient = asyncio.create_task(gate.renew(perform))
        await asyncio.sleep(0)
        impatient.cancel()
        result = await patient
        return result, gate.state

    assert asyncio.run(_run()) == ("renewed", RenewalState.IDLE)
