"""
Storage factory - create a saga state store from a URL.

Supported URLs:
    memory://                 In-memory (no persistence)
    sqlite:///path/to/db      SQLite file (relative or absolute path)
    sqlite://:memory:         SQLite in-memory database
"""

from collections.abc import Callable

from checkout_saga.core.exceptions import ConfigurationError
from checkout_saga.storage.base import SagaStateStore
from checkout_saga.storage.memory import InMemorySagaStateStore
from checkout_saga.storage.sqlite import SQLiteSagaStateStore


def _create_memory_store(remainder: str) -> SagaStateStore:
    return InMemorySagaStateStore()


def _create_sqlite_store(remainder: str) -> SagaStateStore:
    if remainder in (":memory:", "/:memory:"):
        return SQLiteSagaStateStore(":memory:")

    if not remainder.startswith("/") or remainder == "/":
        msg = (
            "SQLite URL must look like sqlite:///path/to/db or sqlite://:memory:\n"
            "Example: sqlite:///./data/sagas.db"
        )
        raise ConfigurationError(msg, details={"url": f"sqlite://{remainder}"})

    # sqlite:///./x.db -> ./x.db, sqlite:////abs/x.db -> /abs/x.db
    return SQLiteSagaStateStore(remainder[1:])


# Store registry mapping URL schemes to factory functions
_STORE_REGISTRY: dict[str, Callable[[str], SagaStateStore]] = {
    "memory": _create_memory_store,
    "sqlite": _create_sqlite_store,
}


def create_state_store(url: str = "memory://") -> SagaStateStore:
    """
    Create a saga state store from a storage URL.

    Raises:
        ConfigurationError: Unknown scheme or malformed URL

    Examples:
        >>> store = create_state_store("memory://")
        >>> store = create_state_store("sqlite:///./data/sagas.db")
    """
    scheme, separator, remainder = url.strip().partition("://")
    scheme = scheme.lower()

    if not separator or scheme not in _STORE_REGISTRY:
        msg = (
            f"Unknown storage URL: '{url}'\n"
            f"Available schemes: {', '.join(f'{s}://' for s in _STORE_REGISTRY)}"
        )
        raise ConfigurationError(msg, details={"url": url})

    return _STORE_REGISTRY[scheme](remainder)
