"""Pytest configuration for HabitXP tests."""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock, patch

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
import pytest
import pytest_asyncio

from custom_components.habitxp.const import DOMAIN
from custom_components.habitxp.models import StorageModel, UserData

UTC = timezone.utc


class FakeClock:
    """Settable clock for temporal tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, *args) -> None:
        self.now = datetime(*args, tzinfo=UTC)


def at(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


@pytest.fixture
def clock():
    """Clock fixed at 2024-01-01 10:00 UTC."""
    return FakeClock(at(2024, 1, 1, 10, 0))


@pytest.fixture
def mock_config_entry():
    """Return a mock config entry."""
    entry = Mock(spec=ConfigEntry)
    entry.entry_id = "test_entry_id"
    entry.domain = DOMAIN
    entry.data = {"users": "alice,bob", "use_todo": True}
    entry.options = {}
    return entry


@pytest_asyncio.fixture
async def mock_hass():
    """Return a mock Home Assistant instance."""
    hass = Mock(spec=HomeAssistant)
    hass.data = {}
    hass.config_entries = Mock()
    hass.services = Mock()
    hass.states = Mock()
    hass.bus = Mock()
    hass.loop = Mock()

    # Mock async methods
    hass.config_entries.async_forward_entry_setups = AsyncMock(return_value=True)
    hass.config_entries.async_unload_platforms = AsyncMock(return_value=True)
    hass.config_entries.async_reload = AsyncMock(return_value=True)
    hass.services.async_register = Mock()
    hass.services.async_remove = Mock()
    hass.services.async_call = AsyncMock()

    return hass


@pytest.fixture
def mock_store():
    """Return a mock store."""
    store = Mock()
    store.async_load = AsyncMock(return_value=StorageModel())
    store.async_save = AsyncMock()
    return store


@pytest.fixture
def coordinator(mock_hass, mock_store, clock):
    """Return a coordinator with user 'alice' and no persisted data."""
    from custom_components.habitxp.coordinator import HabitXPCoordinator

    # Patch the Store to avoid real file operations
    with patch("custom_components.habitxp.coordinator.HabitXPStore") as mock_store_class:
        mock_store_class.return_value = mock_store
        coord = HabitXPCoordinator(mock_hass, clock=clock)
        coord.model = StorageModel()
        coord.model.users["alice"] = UserData(id="alice", name="Alice")
        coord.store = mock_store

    return coord
