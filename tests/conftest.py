"""Shared test configuration and fixtures."""

import os
from collections.abc import Iterator
from unittest.mock import patch

import pytest

_LIFECYCLE_ENV_VARS = (
    "TEST_MODE",
    "INITIAL_CAPITAL",
    "MAX_POSITIONS",
    "MAX_POSITION_SIZE",
    "UPDATE_INTERVAL_MINUTES",
    "MIN_LIQUIDITY",
    "MIN_VOLUME",
    "MAX_SPREAD",
    "MAX_SLIPPAGE",
    "MIN_ORDER_SIZE",
    "TAKER_FEE_RATE",
    "CLAMP_NEGATIVE_EQUITY",
    "POLYMARKET_MARKET_BLACKLIST",
    "PM_LIFECYCLE_CONFIG_DIR",
)


@pytest.fixture(autouse=True)
def _isolate_lifecycle_env_vars() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    """Hide lifecycle overrides set in the developer's environment.

    ``settings.yaml`` reads ``${TEST_MODE:...}``-style variables, so a value
    exported in the shell (or a local ``.env``) would change the defaults
    every config test expects. Remove them for the duration of each test.
    """
    with patch.dict(os.environ):
        for key in _LIFECYCLE_ENV_VARS:
            os.environ.pop(key, None)
        yield
