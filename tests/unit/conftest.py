"""Shared fixtures for client state-machine tests."""

import pytest

from panesync.client.connection import ConnectionManager
from panesync.client.credentials import MemoryCredentialStore
from panesync.client.foreground import ForegroundSignal
from panesync.client.session import SessionCoordinator
from panesync.config.schema import ClientConfig
from tests.fakes import FakeTransportFactory, ManualScheduler


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def transports():
    return FakeTransportFactory()


@pytest.fixture
def credentials():
    return MemoryCredentialStore("T")


@pytest.fixture
def foreground():
    return ForegroundSignal()


@pytest.fixture
def config():
    return ClientConfig()


@pytest.fixture
def connection(transports, credentials, scheduler, foreground, config):
    return ConnectionManager(transports, credentials, scheduler, foreground, config)


@pytest.fixture
def coordinator(connection, scheduler, config):
    return SessionCoordinator(connection, scheduler, config)


@pytest.fixture
def go_live(connection, transports):
    """Connect and authenticate, then forget the bootstrap commands."""

    def _go_live():
        connection.connect()
        transport = transports.last
        transport.open()
        transport.receive({"type": "authenticated", "user_id": "U1"})
        transport.sent.clear()
        return transport

    return _go_live
