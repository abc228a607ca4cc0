"""
Pure tracker reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every event is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from tracker.commands import Command, LogEvent, PublishState
from tracker.events import (
    Event,
    InvokeIssued,
    OperationFailed,
    OperationRebound,
    OperationSucceeded,
    SettlementEvent,
    TrackerDisposed,
)
from tracker.operation_state import Failed, Succeeded, to_pending
from tracker.sequence import is_current, next_token
from tracker.tracker_state import TrackerState

from observability.logger import describe_error


# =============================================================================
# Invariants
# =============================================================================
# - Tokens are bumped ONLY on InvokeIssued, including after disposal
# - Rebinding never bumps or resets tokens and never touches operation_state
# - A settlement commits iff its token is the latest and the tracker is live
# - Stale settlements leave state byte-for-byte unchanged


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: TrackerState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "event_type": event.event_type.value,
            "decision": decision,
            "status": state.operation_state.status.value,
            "latest_token": state.tokens.latest,
            "disposed": state.disposed,
            "details": details or {},
        }
    )


def _ignore(
    state: TrackerState, event: Event, reason: str, details: dict[str, Any] | None = None
) -> tuple[TrackerState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason, **(details or {})}),)


def _transition(
    state: TrackerState,
    new_state: TrackerState,
    event: Event,
    source: str,
    details: dict[str, Any] | None = None,
) -> tuple[TrackerState, tuple[Command, ...]]:
    return new_state, (
        PublishState(state=new_state.operation_state),
        _log(
            new_state,
            event,
            "state_changed",
            {
                "from_status": state.operation_state.status.value,
                "to_status": new_state.operation_state.status.value,
                "source": source,
                **(details or {}),
            },
        ),
    )


# =============================================================================
# Reducer
# =============================================================================

def reduce(
    state: TrackerState,
    event: Event,
) -> tuple[TrackerState, tuple[Command, ...]]:
    """
    Pure reducer for one tracker slot.

    Given the current tracker state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every event is handled or explicitly ignored
    - Version-safe: ignores settlements with stale tokens
    """
    if isinstance(event, InvokeIssued):
        tokens = next_token(state.tokens)

        if state.disposed:
            # Token still issued so the caller's task is uniquely named
            return _ignore(
                replace(state, tokens=tokens),
                event,
                "tracker_disposed",
            )

        new_state = replace(
            state,
            tokens=tokens,
            operation_state=to_pending(state.operation_state),
        )
        return _transition(state, new_state, event, "invoke", {"token": tokens.latest})

    if isinstance(event, SettlementEvent):
        return _reduce_settlement(state, event)

    if isinstance(event, OperationRebound):
        return state, (
            _log(
                state,
                event,
                "operation_rebound",
                {"key": event.key_repr, "key_arity": event.key_arity},
            ),
        )

    if isinstance(event, TrackerDisposed):
        if state.disposed:
            return _ignore(state, event, "already_disposed")
        new_state = replace(state, disposed=True)
        return new_state, (_log(new_state, event, "disposed"),)

    return _ignore(state, event, "unhandled_event")


def _reduce_settlement(
    state: TrackerState,
    event: SettlementEvent,
) -> tuple[TrackerState, tuple[Command, ...]]:
    outcome = "succeeded" if isinstance(event, OperationSucceeded) else "failed"

    if state.disposed:
        return _ignore(
            state, event, "tracker_disposed", {"token": event.token, "outcome": outcome}
        )

    if not is_current(state.tokens, event.token):
        return _ignore(
            state,
            event,
            "stale_token",
            {"token": event.token, "latest_token": state.tokens.latest, "outcome": outcome},
        )

    if isinstance(event, OperationSucceeded):
        new_state = replace(state, operation_state=Succeeded(data=event.data))
        return _transition(state, new_state, event, "settled", {"token": event.token})

    if isinstance(event, OperationFailed):
        new_state = replace(state, operation_state=Failed(error=event.error))
        return _transition(
            state,
            new_state,
            event,
            "settled",
            {
                "token": event.token,
                "cancelled": event.cancelled,
                "error": describe_error(event.error),
            },
        )

    return _ignore(state, event, "unhandled_settlement")
