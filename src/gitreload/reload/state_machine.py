"""Reload State Machine.

States:
    IDLE: Nothing pending, polling normally
    STAGING: New revision detected, candidate being written
    RELOAD_REQUESTED: Host asked to reload, outcome not yet observed
    COMMITTED: Host reported success, staged candidate is now current
    ROLLED_BACK: Reload failed or was rejected, previous current restored

Valid Transitions:
    IDLE → STAGING → RELOAD_REQUESTED
    IDLE → RELOAD_REQUESTED (startup replay of a staged candidate)
    STAGING → IDLE (staging failed, prior state untouched)
    RELOAD_REQUESTED → COMMITTED | ROLLED_BACK
    COMMITTED | ROLLED_BACK → IDLE

Usage:
    from gitreload.reload.state_machine import ReloadState, ReloadStateMachine

    sm = ReloadStateMachine()
    sm.transition(ReloadState.STAGING)
    sm.transition(ReloadState.RELOAD_REQUESTED)
"""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Callable

import structlog

from gitreload.core.exceptions import InvalidStateTransition


log = structlog.get_logger()


class ReloadState(StrEnum):
    """Reload coordination states."""

    IDLE = "IDLE"
    STAGING = "STAGING"
    RELOAD_REQUESTED = "RELOAD_REQUESTED"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


VALID_TRANSITIONS: frozenset[tuple[ReloadState, ReloadState]] = frozenset([
    (ReloadState.IDLE, ReloadState.STAGING),
    (ReloadState.IDLE, ReloadState.RELOAD_REQUESTED),
    (ReloadState.STAGING, ReloadState.RELOAD_REQUESTED),
    (ReloadState.STAGING, ReloadState.IDLE),
    (ReloadState.RELOAD_REQUESTED, ReloadState.COMMITTED),
    (ReloadState.RELOAD_REQUESTED, ReloadState.ROLLED_BACK),
    (ReloadState.COMMITTED, ReloadState.IDLE),
    (ReloadState.ROLLED_BACK, ReloadState.IDLE),
])


def is_valid_transition(from_state: ReloadState, to_state: ReloadState) -> bool:
    """Check if a state transition is valid."""
    return (from_state, to_state) in VALID_TRANSITIONS


def get_valid_targets(from_state: ReloadState) -> set[ReloadState]:
    """Get all valid target states from a given state."""
    return {to for (frm, to) in VALID_TRANSITIONS if frm == from_state}


StateChangeListener = Callable[[ReloadState, ReloadState], None]


class ReloadStateMachine:
    """Strict reload state machine.

    Invalid transitions raise InvalidStateTransition.

    Attributes:
        current_state: Current reload state (read-only).
        history: List of (state, timestamp) tuples (read-only copy).
    """

    def __init__(self, initial: ReloadState = ReloadState.IDLE) -> None:
        self._current_state = initial
        self._history: list[tuple[ReloadState, datetime]] = [
            (initial, datetime.now(timezone.utc))
        ]
        self._listeners: list[StateChangeListener] = []

    @property
    def current_state(self) -> ReloadState:
        return self._current_state

    @property
    def history(self) -> list[tuple[ReloadState, datetime]]:
        return list(self._history)

    def add_listener(self, callback: StateChangeListener) -> None:
        """Add a listener called with (old_state, new_state) on transitions."""
        self._listeners.append(callback)

    def transition(self, to_state: ReloadState) -> None:
        """Transition to a new state.

        Raises:
            InvalidStateTransition: If transition is not valid.
        """
        from_state = self._current_state

        if not is_valid_transition(from_state, to_state):
            raise InvalidStateTransition(
                from_state=str(from_state),
                to_state=str(to_state),
            )

        self._current_state = to_state
        self._history.append((to_state, datetime.now(timezone.utc)))

        log.info(
            "reload_state_changed",
            from_state=str(from_state),
            to_state=str(to_state),
        )

        for listener in self._listeners:
            try:
                listener(from_state, to_state)
            except Exception as e:
                log.warning("state_listener_error", error=str(e))
