"""Tests for the MELCloud device coordinator."""

from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from homeassistant.const import CONF_EMAIL, CONF_PASSWORD
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import UpdateFailed

from custom_components.melcloud_ata import api
from custom_components.melcloud_ata.const import CONF_CONTEXT_KEY
from custom_components.melcloud_ata.coordinator import MelCloudDeviceCoordinator
from custom_components.melcloud_ata.models import AtaDevice, AtaDeviceState

from .conftest import SAMPLE_BUILDING_ID, SAMPLE_CONTEXT_KEY, SAMPLE_DEVICE_ID

SECOND_DEVICE_ID = 102
NEW_CONTEXT_KEY = "renewed-context-key"


@pytest.fixture
def mock_hass() -> Mock:
    """Create a mock Home Assistant instance."""
    return Mock()


@pytest.fixture
def mock_session() -> Mock:
    """Create a mock HTTP session."""
    return Mock(spec=httpx.AsyncClient)


@pytest.fixture
def mock_config_entry() -> Mock:
    """Create a mock config entry."""
    entry = Mock()
    entry.entry_id = "test_entry_id"
    entry.data = {
        CONF_EMAIL: "user@example.com",
        CONF_PASSWORD: "password123",
        CONF_CONTEXT_KEY: SAMPLE_CONTEXT_KEY,
    }
    return entry


@pytest.fixture
def devices() -> list[AtaDevice]:
    """Create two devices in the same building."""
    return [
        AtaDevice(id=SAMPLE_DEVICE_ID, building_id=SAMPLE_BUILDING_ID, name="Living"),
        AtaDevice(id=SECOND_DEVICE_ID, building_id=SAMPLE_BUILDING_ID, name="Office"),
    ]


@pytest.fixture
def coordinator(
    mock_hass: Mock,
    mock_session: Mock,
    mock_config_entry: Mock,
    devices: list[AtaDevice],
) -> MelCloudDeviceCoordinator:
    """Create a coordinator for testing."""
    return MelCloudDeviceCoordinator(
        mock_hass,
        mock_session,
        mock_config_entry,
        SAMPLE_CONTEXT_KEY,
        devices,
    )


def _state(device_id: int) -> AtaDeviceState:
    return AtaDeviceState(device_id=device_id, building_id=SAMPLE_BUILDING_ID)


class TestMelCloudDeviceCoordinatorInit:
    """Tests for coordinator initialization."""

    def test_init_sets_attributes(
        self,
        coordinator: MelCloudDeviceCoordinator,
        mock_session: Mock,
    ) -> None:
        """Test that init stores session, key and devices."""
        assert coordinator.session == mock_session
        assert coordinator.context_key == SAMPLE_CONTEXT_KEY
        assert set(coordinator.devices) == {SAMPLE_DEVICE_ID, SECOND_DEVICE_ID}
        assert coordinator.data == {}

    def test_init_sets_update_interval(
        self, coordinator: MelCloudDeviceCoordinator
    ) -> None:
        """Test that init sets the polling interval."""
        assert coordinator.update_interval == timedelta(seconds=300)


class TestMelCloudDeviceCoordinatorUpdate:
    """Tests for _async_update_data."""

    @pytest.mark.asyncio
    async def test_update_reads_every_device(
        self,
        coordinator: MelCloudDeviceCoordinator,
        mock_session: Mock,
    ) -> None:
        """Test that each device state is fetched with its building id."""
        with patch.object(
            api,
            "async_get_device_state",
            AsyncMock(side_effect=[_state(SAMPLE_DEVICE_ID), _state(SECOND_DEVICE_ID)]),
        ) as mock_get:
            result = await coordinator._async_update_data()

        assert set(result) == {SAMPLE_DEVICE_ID, SECOND_DEVICE_ID}
        mock_get.assert_any_await(
            mock_session, SAMPLE_CONTEXT_KEY, SAMPLE_DEVICE_ID, SAMPLE_BUILDING_ID
        )
        assert mock_get.await_count == 2

    @pytest.mark.asyncio
    async def test_update_without_devices_returns_empty(
        self,
        mock_hass: Mock,
        mock_session: Mock,
        mock_config_entry: Mock,
    ) -> None:
        """Test that no request is made without devices."""
        coordinator = MelCloudDeviceCoordinator(
            mock_hass, mock_session, mock_config_entry, SAMPLE_CONTEXT_KEY, []
        )
        with patch.object(api, "async_get_device_state", AsyncMock()) as mock_get:
            result = await coordinator._async_update_data()

        assert result == {}
        mock_get.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "message"),
        [
            (api.MelCloudApiClientError("boom"), "API error"),
            (httpx.ConnectError("offline"), "Connection error"),
        ],
    )
    async def test_update_raises_update_failed(
        self,
        coordinator: MelCloudDeviceCoordinator,
        error: Exception,
        message: str,
    ) -> None:
        """Test that client and transport errors become UpdateFailed."""
        with (
            patch.object(
                api, "async_get_device_state", AsyncMock(side_effect=error)
            ) as mock_get,
            pytest.raises(UpdateFailed, match=message),
        ):
            await coordinator._async_update_data()

        mock_get.assert_awaited_once()


class TestMelCloudDeviceCoordinatorReauth:
    """Tests for renewing a rejected context key."""

    @pytest.mark.asyncio
    async def test_update_logs_in_again_and_retries(
        self,
        coordinator: MelCloudDeviceCoordinator,
        mock_hass: Mock,
        mock_session: Mock,
        mock_config_entry: Mock,
    ) -> None:
        """Test that a rejected key is renewed, saved and used for the retry."""
        with (
            patch.object(
                api,
                "async_get_device_state",
                AsyncMock(
                    side_effect=[
                        api.MelCloudApiAuthError("expired"),
                        _state(SAMPLE_DEVICE_ID),
                        _state(SECOND_DEVICE_ID),
                    ]
                ),
            ) as mock_get,
            patch.object(
                api, "async_login", AsyncMock(return_value=NEW_CONTEXT_KEY)
            ) as mock_login,
        ):
            result = await coordinator._async_update_data()

        assert set(result) == {SAMPLE_DEVICE_ID, SECOND_DEVICE_ID}
        mock_login.assert_awaited_once_with(
            mock_session, "user@example.com", "password123"
        )
        assert coordinator.context_key == NEW_CONTEXT_KEY
        mock_hass.config_entries.async_update_entry.assert_called_once_with(
            mock_config_entry,
            data={**mock_config_entry.data, CONF_CONTEXT_KEY: NEW_CONTEXT_KEY},
        )
        assert mock_get.await_count == 3
        for call in mock_get.await_args_list[1:]:
            assert call[0][1] == NEW_CONTEXT_KEY

    @pytest.mark.asyncio
    async def test_update_raises_auth_failed_when_login_rejected(
        self,
        coordinator: MelCloudDeviceCoordinator,
        mock_hass: Mock,
    ) -> None:
        """Test that rejected stored credentials start the reauth flow."""
        with (
            patch.object(
                api,
                "async_get_device_state",
                AsyncMock(side_effect=api.MelCloudApiAuthError("expired")),
            ) as mock_get,
            patch.object(
                api,
                "async_login",
                AsyncMock(side_effect=api.MelCloudApiAuthError("bad password")),
            ),
            pytest.raises(ConfigEntryAuthFailed),
        ):
            await coordinator._async_update_data()

        mock_get.assert_awaited_once()
        mock_hass.config_entries.async_update_entry.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_fails_when_renewed_key_is_rejected(
        self,
        coordinator: MelCloudDeviceCoordinator,
    ) -> None:
        """Test that the call is repeated only once after logging in."""
        with (
            patch.object(
                api,
                "async_get_device_state",
                AsyncMock(side_effect=api.MelCloudApiAuthError("expired")),
            ) as mock_get,
            patch.object(
                api, "async_login", AsyncMock(return_value=NEW_CONTEXT_KEY)
            ) as mock_login,
            pytest.raises(UpdateFailed, match="Authentication error"),
        ):
            await coordinator._async_update_data()

        mock_login.assert_awaited_once()
        assert mock_get.await_count == 2

    @pytest.mark.asyncio
    async def test_update_fails_when_login_cannot_connect(
        self,
        coordinator: MelCloudDeviceCoordinator,
    ) -> None:
        """Test that a login transport error becomes UpdateFailed."""
        with (
            patch.object(
                api,
                "async_get_device_state",
                AsyncMock(side_effect=api.MelCloudApiAuthError("expired")),
            ),
            patch.object(
                api,
                "async_login",
                AsyncMock(side_effect=httpx.ConnectError("offline")),
            ),
            pytest.raises(UpdateFailed, match="Connection error"),
        ):
            await coordinator._async_update_data()

    @pytest.mark.asyncio
    async def test_reauth_without_credentials_raises_auth_failed(
        self,
        coordinator: MelCloudDeviceCoordinator,
        mock_config_entry: Mock,
    ) -> None:
        """Test that an entry without a password cannot log in again."""
        mock_config_entry.data = {CONF_EMAIL: "user@example.com"}
        with (
            patch.object(api, "async_login", AsyncMock()) as mock_login,
            pytest.raises(ConfigEntryAuthFailed),
        ):
            await coordinator.async_reauth()

        mock_login.assert_not_awaited()


class TestMelCloudDeviceCoordinatorApplyState:
    """Tests for async_apply_state."""

    def test_apply_state_replaces_device_state(
        self, coordinator: MelCloudDeviceCoordinator
    ) -> None:
        """Test that a write echo replaces the stored state."""
        old_state = _state(SAMPLE_DEVICE_ID)
        other_state = _state(SECOND_DEVICE_ID)
        coordinator.data = {SAMPLE_DEVICE_ID: old_state, SECOND_DEVICE_ID: other_state}
        new_state = _state(SAMPLE_DEVICE_ID)

        with patch.object(coordinator, "async_set_updated_data") as mock_set:
            coordinator.async_apply_state(new_state)

        data: dict[int, Any] = mock_set.call_args[0][0]
        assert data[SAMPLE_DEVICE_ID] is new_state
        assert data[SECOND_DEVICE_ID] is other_state
        assert coordinator.data[SAMPLE_DEVICE_ID] is old_state
