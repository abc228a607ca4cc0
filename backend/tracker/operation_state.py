"""
Observable operation state (tagged union).

Rules:
- Exactly one variant is active at any instant.
- Variants are immutable value objects.
- Only the reducer decides transitions; consumers read.
- Idle exposes no data and no error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from tracker.enums.status import Status


# =============================================================================
# Variants
# =============================================================================

@dataclass(frozen=True)
class Idle:
    """No operation has ever run."""
    status: Status = field(default=Status.IDLE, init=False)


@dataclass(frozen=True)
class Pending:
    """
    An operation is in flight.

    data / error are carried over from the previous state so a consumer
    can keep showing them during a refresh. They are informational only.
    """
    data: Any = None
    error: BaseException | None = None
    status: Status = field(default=Status.PENDING, init=False)


@dataclass(frozen=True)
class Failed:
    """The most recently issued operation raised."""
    error: BaseException
    status: Status = field(default=Status.FAILED, init=False)


@dataclass(frozen=True)
class Succeeded:
    """The most recently issued operation returned."""
    data: Any
    status: Status = field(default=Status.SUCCEEDED, init=False)


OperationState = Union[Idle, Pending, Failed, Succeeded]


# =============================================================================
# Pure transitions
# =============================================================================

def to_pending(previous: OperationState) -> Pending:
    """
    Enter Pending, keeping whatever data/error the previous state carried.

    Pending -> Pending keeps both fields; Succeeded keeps data;
    Failed keeps error; Idle carries nothing.
    """
    if isinstance(previous, Pending):
        return Pending(data=previous.data, error=previous.error)
    if isinstance(previous, Succeeded):
        return Pending(data=previous.data)
    if isinstance(previous, Failed):
        return Pending(error=previous.error)
    return Pending()


def is_settled(state: OperationState) -> bool:
    return state.status in (Status.SUCCEEDED, Status.FAILED)
