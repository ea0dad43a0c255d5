"""Unit test fixtures: cache clearing and wired engines."""

from collections.abc import Iterator

import pytest

from task_market_service.config import clear_settings_cache
from task_market_service.core.state import reset_app_state
from tests.helpers import Market, build_market


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


@pytest.fixture
def market(tmp_path) -> Iterator[Market]:
    """All engines on a fresh database, trust funding, flat fee of 20."""
    built = build_market(tmp_path)
    yield built
    built.store.close()


@pytest.fixture
def prepaid_market(tmp_path) -> Iterator[Market]:
    """All engines on a fresh database with prepaid escrow funding."""
    built = build_market(tmp_path, funding_model="prepaid")
    yield built
    built.store.close()
