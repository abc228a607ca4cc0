"""
Sequence token counter for one tracker.

Rules:
- Tokens are monotonic integers.
- They are advanced ONLY by the tracker reducer.
- This module defines structure and pure helpers, not behavior.
"""

from __future__ import annotations

from dataclasses import dataclass

from spec import TOKEN_NONE, TOKEN_STEP


@dataclass(frozen=True)
class SequenceCounter:
    """
    Immutable holder of the most recently issued token.

    Semantics:
    - latest == TOKEN_NONE means "no invocation yet".
    - Once a token is issued, it is never reused.
    """

    latest: int = TOKEN_NONE


def next_token(current: SequenceCounter) -> SequenceCounter:
    """Return a counter advanced by one issuance."""
    return SequenceCounter(latest=current.latest + TOKEN_STEP)


def is_current(counter: SequenceCounter, token: int) -> bool:
    """True iff token is the most recently issued one."""
    return token != TOKEN_NONE and token == counter.latest
