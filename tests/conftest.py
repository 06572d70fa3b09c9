"""
Pytest configuration and fixtures.

Stores are created in a per-test temporary directory so tests never share
configuration files or lock files.
"""

import pytest

from notification.store import ConfigStore


@pytest.fixture
def store(tmp_path):
    """A store backed by a temp file that does not exist yet (default config)."""
    return ConfigStore(
        str(tmp_path / "notifications.yaml"),
        lock_timeout=0.5,
        lock_poll_interval=0.05,
    )


@pytest.fixture
def populated_store(store):
    """A store with one endpoint of every kind and two matchers."""
    with store.edit() as config:
        config.create_endpoint("gotify", {
            "name": "push",
            "server": "https://gotify.example.com",
            "token": "s3cret",
            "comment": "phone",
        })
        config.create_endpoint("smtp", {
            "name": "relay",
            "server": "smtp.example.com",
            "from-address": "pve@example.com",
            "mailto": ["ops@example.com"],
            "password": "hunter2",
        })
        config.create_matcher({
            "name": "errors",
            "match-severity": ["warning,error"],
            "target": ["push"],
        })
    return store
