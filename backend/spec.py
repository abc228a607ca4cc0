"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for the tracker's behavioral constants.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Sequence Tokens
# =============================================================================

# Token value held by a tracker before its first invocation.
TOKEN_NONE: Final[int] = 0

# Tokens advance by exactly one per invocation; never reused.
TOKEN_STEP: Final[int] = 1

# =============================================================================
# Naming
# =============================================================================

DEFAULT_TRACKER_NAME: Final[str] = "operation"

# Task names are "<tracker name><sep><token>"
TASK_NAME_SEPARATOR: Final[str] = "#"

# =============================================================================
# Observability
# =============================================================================

METRIC_OPERATION_DURATION: Final[str] = "operation_duration"

# Exception messages are truncated to this length in log payloads
ERROR_MESSAGE_MAX_CHARS: Final[int] = 500

# Invalidation keys are logged as repr(), truncated to this length
KEY_REPR_MAX_CHARS: Final[int] = 200

# =============================================================================
# Configuration defaults (env var -> default)
# =============================================================================

ENV_JSON_LOGS: Final[str] = "TRACKER_JSON_LOGS"
ENV_METRICS: Final[str] = "TRACKER_METRICS"
ENV_LOG_STALE: Final[str] = "TRACKER_LOG_STALE"

DEFAULT_JSON_LOGS: Final[bool] = True
DEFAULT_METRICS: Final[bool] = True
DEFAULT_LOG_STALE: Final[bool] = True
