import pytest

from fakes import ALL_PERMISSIONS, FakeAccounts, FakeTransport, InMemoryEventStore
from jarwik.services.timezone import TimeResolver


@pytest.fixture
def resolver():
    return TimeResolver("Asia/Kolkata")


@pytest.fixture
def store():
    return InMemoryEventStore()


@pytest.fixture
def accounts():
    return FakeAccounts({"user-1": ALL_PERMISSIONS})


@pytest.fixture
def transport():
    return FakeTransport()
