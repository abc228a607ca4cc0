"""
Invalidation key handling.

An invalidation key is an ordered collection of values. When a tracker is
rebound with a key that no longer matches, the wrapped operation is
replaced and a new invoker identity is produced.

Element comparison is identity first, then equality. NaN matches NaN.
Elements whose equality result has no truth value (array-likes) only
match by identity.
Keys of different arity never match.
"""

from __future__ import annotations

import math
from typing import Any, Iterable

InvalidationKey = tuple[Any, ...]


def normalize_key(key: Iterable[Any] | None) -> InvalidationKey:
    if key is None:
        return ()
    return tuple(key)


def _same(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        # Array-likes compare element-wise and refuse bool(); treat as changed
        return False


def keys_match(previous: InvalidationKey, current: InvalidationKey) -> bool:
    if len(previous) != len(current):
        return False
    return all(_same(a, b) for a, b in zip(previous, current))
