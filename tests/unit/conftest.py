# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from config import TrackerConfig


@pytest.fixture
def quiet_config() -> TrackerConfig:
    """Tracker config with no stdout output."""
    return TrackerConfig(enable_json_logs=False, enable_metrics=False)
