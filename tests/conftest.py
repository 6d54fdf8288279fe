"""Shared fixtures for nemo-calendar tests."""

import pytest

from nemo_calendar import config, occurrence_locator, timezone_utils


@pytest.fixture(autouse=True)
def _reset_state():
    """Reset module-level state between tests."""
    timezone_utils.set_timezone("UTC")
    occurrence_locator.set_max_instances(config.DEFAULT_MAX_INSTANCES)
    occurrence_locator.set_horizon_years(config.DEFAULT_HORIZON_YEARS)
    config.set_debug(False)
    yield
    timezone_utils.set_timezone("UTC")
    occurrence_locator.set_max_instances(config.DEFAULT_MAX_INSTANCES)
    occurrence_locator.set_horizon_years(config.DEFAULT_HORIZON_YEARS)
    config.set_debug(False)
