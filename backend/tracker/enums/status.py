"""
Operation status enumeration.

Rules:
- This enum is the discriminant of the OperationState union.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class Status(str, Enum):
    """Lifecycle status of one tracker slot."""

    IDLE = "IDLE"
    PENDING = "PENDING"
    FAILED = "FAILED"
    SUCCEEDED = "SUCCEEDED"
