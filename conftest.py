"""Pytest configuration: block the web3 test plugin and skip retry backoff waits."""

import pytest

from engine import resilience

pytest_plugins = []


def pytest_configure(config):
    config.pluginmanager.set_blocked("web3.tools.pytest_ethereum")


@pytest.fixture(autouse=True)
def retry_sleeps(monkeypatch):
    """Record the backoff delays ``retry_network`` asks for instead of sleeping."""
    delays = []
    monkeypatch.setattr(resilience.time, "sleep", delays.append)
    return delays
