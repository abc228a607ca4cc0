"""
Event definitions for the tracker reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no async, no side effects; ts_ms is stamped by the runtime.

Settlement events carry the issuing token for stale gating.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every event type must be explicitly handled or explicitly ignored.
    """

    INVOKE_ISSUED = "INVOKE_ISSUED"
    OPERATION_SUCCEEDED = "OPERATION_SUCCEEDED"
    OPERATION_FAILED = "OPERATION_FAILED"
    OPERATION_REBOUND = "OPERATION_REBOUND"
    TRACKER_DISPOSED = "TRACKER_DISPOSED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base class for all tracker events.

    event_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class SettlementEvent(Event):
    """
    Base class for events reporting the outcome of one invocation.

    The reducer MUST ignore settlements whose token is not the most
    recently issued one.
    """

    token: int


# =============================================================================
# Invocation lifecycle
# =============================================================================

@dataclass(frozen=True)
class InvokeIssued(Event):
    """A caller invoked the tracker; a new token must be issued."""


@dataclass(frozen=True)
class OperationSucceeded(SettlementEvent):
    """The operation for `token` returned."""
    data: Any


@dataclass(frozen=True)
class OperationFailed(SettlementEvent):
    """
    The operation for `token` raised.

    cancelled is True when the caller cancelled the returned task.
    """
    error: BaseException
    cancelled: bool = False


# =============================================================================
# Slot lifecycle
# =============================================================================

@dataclass(frozen=True)
class OperationRebound(Event):
    """The invalidation key changed and the wrapped operation was replaced."""
    key_repr: str
    key_arity: int


@dataclass(frozen=True)
class TrackerDisposed(Event):
    """The owning slot was torn down."""
