import logging

import pytest


def pytest_configure(config):
    # Register markers used across the repo without requiring external plugins.
    config.addinivalue_line(
        "markers", "slow: long-running concurrency or large-number scenarios"
    )


@pytest.fixture(autouse=True)
def _quiet_engine_logs(caplog):
    """
    Keep per-operation INFO lines out of failure reports; tests that assert on
    log output can lower the level again through `caplog`.
    """
    caplog.set_level(logging.WARNING, logger="stakeledger")
    yield
