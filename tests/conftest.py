import pytest

from piivault.adapters.memory.transit import InMemoryTransitClient
from piivault.dependencies import reset_dependencies
from piivault.domain.crypto.field_encryptor import FieldEncryptor
from piivault.domain.crypto.integrity import IntegrityKeyring
from piivault.domain.crypto.search import SearchHasher


class RecordingSink:
    """Security sink that keeps emitted events in memory."""

    def __init__(self):
        self.events = []

    async def emit(self, event):
        self.events.append(event)


@pytest.fixture(autouse=True)
def clear_dependencies():
    """Drop cached encryptor/hasher instances around each test."""
    reset_dependencies()
    yield
    reset_dependencies()


@pytest.fixture
def transit():
    return InMemoryTransitClient(key_name="pii-key")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def encryptor(transit, sink):
    return FieldEncryptor(transit, IntegrityKeyring("pii-key"), sink)


@pytest.fixture
def hasher():
    return SearchHasher("test-search-secret")
