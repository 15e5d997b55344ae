"""Shared fixtures for notification client tests."""

import pytest

from pme_notify.connection import ConnectionManager
from pme_notify.types import ReconnectConfig

from tests.fakes import FakeConnector


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def frames():
    return []


@pytest.fixture
def manager(connector, statuses, frames):
    return ConnectionManager(
        "ws://pme.test/ws/notifications",
        on_message=frames.append,
        on_status_change=statuses.append,
        connect_factory=connector,
    )


@pytest.fixture
def fast_reconnect():
    return ReconnectConfig(initial_delay=0.001, max_delay=0.03)
