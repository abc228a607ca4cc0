"""
Authoritative tracker state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tracker.operation_state import Idle, OperationState
from tracker.sequence import SequenceCounter


@dataclass(frozen=True)
class TrackerState:
    """Immutable snapshot of all tracker-owned state."""

    operation_state: OperationState = field(default_factory=Idle)

    # Survives rebinds; never reset
    tokens: SequenceCounter = field(default_factory=SequenceCounter)

    # Set once on teardown; settlements never commit afterwards
    disposed: bool = False
