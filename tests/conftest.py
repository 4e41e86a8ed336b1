"""Common pytest configuration."""

from collections.abc import Callable, Iterator

import pytest

from tessera_core.settings import get_settings
from tessera_schemas.primitives import Timestamp

FIXED_TIMESTAMP: Timestamp = "2026-01-26T12:00:00Z"


@pytest.fixture
def clock() -> Callable[[], Timestamp]:
    """Return a clock that always reports the same timestamp.

    Returns:
        Callable[[], Timestamp]: Deterministic timestamp provider.
    """
    return lambda: FIXED_TIMESTAMP


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Return a factory producing sequential run identifiers.

    Returns:
        Callable[[], str]: Deterministic identifier factory.
    """
    counter = iter(range(1, 10_000))
    return lambda: f"run{next(counter)}"


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Drop cached service settings between tests.

    Yields:
        None: Control returns to the test.
    """
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
