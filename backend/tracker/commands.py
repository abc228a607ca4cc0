"""
Side-effect command definitions for the tracker.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from tracker.operation_state import OperationState


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """Stable discriminants used for logging and runtime dispatch."""

    PUBLISH_STATE = "PUBLISH_STATE"
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Observer Commands
# =============================================================================

@dataclass(frozen=True)
class PublishState(Command):
    """Deliver a new OperationState to every subscriber."""
    state: OperationState
    command_type: CommandType = CommandType.PUBLISH_STATE


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
