"""
JSONL event logger for tracker decisions.

- One JSON object per line on stdout, flushed immediately
- Operation payloads (results, exceptions) are arbitrary objects, so
  values json cannot encode are rendered, not rejected
- Never raises
"""

from __future__ import annotations

import json
import sys
from typing import Any, Mapping, Callable

from spec import ERROR_MESSAGE_MAX_CHARS


# ------------------------------------------------------------------
# Output sink (patchable in tests)
# ------------------------------------------------------------------

def _write_stdout(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _write_stdout


def _truncate(text: str) -> str:
    if len(text) > ERROR_MESSAGE_MAX_CHARS:
        return text[:ERROR_MESSAGE_MAX_CHARS] + "..."
    return text


def describe_error(error: BaseException) -> dict[str, str]:
    """
    JSON-safe summary of an exception for log payloads.

    Pure: the exception is not modified or re-raised.
    """
    return {
        "type": type(error).__qualname__,
        "message": _truncate(str(error)),
    }


def _encode_value(value: Any) -> Any:
    # json.dumps `default` hook: called only for values json cannot encode
    if isinstance(value, BaseException):
        return describe_error(value)
    if isinstance(value, (set, frozenset)):
        return list(value)
    return _truncate(repr(value))


def _dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(
        payload,
        ensure_ascii=False,
        separators=(",", ":"),
        default=_encode_value,
    )


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write one tracker event as a JSONL line.

    Exceptions are encoded with describe_error(); other unencodable values
    as their truncated repr(). Payloads json still cannot encode (circular
    references, non-string keys of exotic types) produce a
    LOGGER_SERIALIZATION_ERROR line in their place.
    """
    try:
        line = _dumps(event)
    except (TypeError, ValueError) as e:
        line = _dumps({
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "tracker": event.get("tracker"),
            "error": str(e),
            "original_event_repr": _truncate(repr(event)),
        })

    _print(line)
