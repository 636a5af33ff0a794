"""Session renewal state machine with a single-flight gate.

States and the only legal transitions::

    IDLE      --start-->    IN_FLIGHT
    IN_FLIGHT --succeed-->  IDLE
    IN_FLIGHT --fail-->     FAILED
    IN_FLIGHT --abandon-->  IDLE       (renewal task cancelled)
    FAILED    --reset-->    IDLE       (a new session was established)
    IDLE      --reset-->    IDLE
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import Awaitable, Callable

from packages.edudesk_shared.logging import get_logger, log_context
from packages.edudesk_shared.logging import fields

_LOGGER = get_logger(__name__)


class RenewalState(StrEnum):
    """Lifecycle of the session renewal."""

    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"


class RenewalEvent(StrEnum):
    """Inputs to the renewal state machine."""

    START = "start"
    SUCCEED = "succeed"
    FAIL = "fail"
    ABANDON = "abandon"
    RESET = "reset"


class IllegalRenewalTransition(RuntimeError):
    """Raised when an event is not valid in the current renewal state."""


_TRANSITIONS: dict[tuple[RenewalState, RenewalEvent], RenewalState] = {
    (RenewalState.IDLE, RenewalEvent.START): RenewalState.IN_FLIGHT,
    (RenewalState.IN_FLIGHT, RenewalEvent.SUCCEED): RenewalState.IDLE,
    (RenewalState.IN_FLIGHT, RenewalEvent.FAIL): RenewalState.FAILED,
    (RenewalState.IN_FLIGHT, RenewalEvent.ABANDON): RenewalState.IDLE,
    (RenewalState.FAILED, RenewalEvent.RESET): RenewalState.IDLE,
    (RenewalState.IDLE, RenewalEvent.RESET): RenewalState.IDLE,
}


def transition(state: RenewalState, event: RenewalEvent) -> RenewalState:
    """Return the state reached by applying ``event`` in ``state``."""
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise IllegalRenewalTransition(
            f"renewal event {event.value!r} is not valid in state {state.value!r}"
        ) from None


class RenewalFailedError(RuntimeError):
    """Raised to callers when the gate is FAILED and cannot renew."""


class RenewalGate:
    """Coordinates renewal so concurrent callers share one renewal attempt.

    The first caller starts a renewal task; every caller arriving while it is
    in flight awaits that same task. ``on_failure`` runs exactly once per
    failed renewal, after the gate has entered ``FAILED``.
    """

    def __init__(self, *, on_failure: Callable[[], None] | None = None) -> None:
        self._state = RenewalState.IDLE
        self._task: asyncio.Task[str] | None = None
        self._on_failure = on_failure

    @property
    def state(self) -> RenewalState:
        """Return the current renewal state."""
        return self._state

    async def renew(self, perform: Callable[[], Awaitable[str]]) -> str:
        """Join the in-flight renewal, or start one running ``perform``.

        Returns the renewed access token.
        """
        if self._state is RenewalState.FAILED:
            raise RenewalFailedError("session renewal already failed")
        if self._task is None:
            self._apply(RenewalEvent.START)
            self._task = asyncio.ensure_future(self._run(perform))
        # Shielded so a cancelled waiter never cancels the shared renewal.
        return await asyncio.shield(self._task)

    def reset(self) -> None:
        """Return to ``IDLE`` after a fresh session has been established."""
        if self._state is RenewalState.IN_FLIGHT:
            return
        self._apply(RenewalEvent.RESET)

    async def _run(self, perform: Callable[[], Awaitable[str]]) -> str:
        try:
            token = await perform()
        except asyncio.CancelledError:
            self._apply(RenewalEvent.ABANDON)
            raise
        except Exception:
            self._apply(RenewalEvent.FAIL)
            if self._on_failure is not None:
                self._on_failure()
            raise
        else:
            self._apply(RenewalEvent.SUCCEED)
            return token
        finally:
            self._task = None

    def _apply(self, event: RenewalEvent) -> None:
        previous = self._state
        self._state = transition(previous, event)
        with log_context({fields.RENEWAL_STATE: self._state.value}):
            _LOGGER.debug("Renewal %s: %s -> %s", event.value, previous.value, self._state.value)
