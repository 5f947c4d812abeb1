"""Shared fixtures for the contact_vault test suite."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from contact_vault.backup.manager import SnapshotWriter
from contact_vault.contacts.store import ContactStore
from contact_vault.storage import KeyValueStore, StructuredStore
from contact_vault.vault import ContactVault

START_TIME = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for time-dependent behavior."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store():
    store = KeyValueStore(":memory:")
    store.initialize()
    yield store
    store.close()


@pytest_asyncio.fixture
async def structured_store():
    store = StructuredStore(":memory:")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def contact_store(clock):
    return ContactStore(clock=clock)


@pytest.fixture
def writer(contact_store, kv_store, structured_store, clock):
    return SnapshotWriter(contact_store, kv_store, structured_store, clock=clock)


@pytest_asyncio.fixture
async def vault(clock):
    """An opened in-memory vault with no data."""
    contact_vault = ContactVault.in_memory(clock=clock)
    await contact_vault.open()
    yield contact_vault
    await contact_vault.close()
