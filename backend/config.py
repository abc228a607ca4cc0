"""
Tracker configuration.

Responsibilities:
- Read environment variables (optionally seeded from a .env file)
- Provide a typed, immutable config object

Non-responsibilities:
- No tracker logic
- No behavioral constants (see spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from spec import (
    DEFAULT_JSON_LOGS,
    DEFAULT_LOG_STALE,
    DEFAULT_METRICS,
    ENV_JSON_LOGS,
    ENV_LOG_STALE,
    ENV_METRICS,
)


def _flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip() == "1"


@dataclass(frozen=True)
class TrackerConfig:
    """
    Immutable tracker configuration.

    Constructed once per process (or per test) and passed to every
    tracker created with it. Trackers created without a config load
    one from the environment.
    """

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool = DEFAULT_JSON_LOGS
    enable_metrics: bool = DEFAULT_METRICS

    # "ignore" decisions are the noisiest events under rapid re-invocation
    log_stale_decisions: bool = DEFAULT_LOG_STALE

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env(dotenv_path: str | os.PathLike[str] | None = None) -> TrackerConfig:
        """
        Load configuration from environment variables.

        If dotenv_path is given, its variables are loaded first without
        overriding variables already present in the environment.

        Flags are enabled only by the literal value "1".
        """
        if dotenv_path is not None:
            load_dotenv(dotenv_path, override=False)

        return TrackerConfig(
            enable_json_logs=_flag(ENV_JSON_LOGS, DEFAULT_JSON_LOGS),
            enable_metrics=_flag(ENV_METRICS, DEFAULT_METRICS),
            log_stale_decisions=_flag(ENV_LOG_STALE, DEFAULT_LOG_STALE),
        )
