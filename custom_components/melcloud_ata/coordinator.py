"""Coordinator for MELCloud ATA integration."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
from homeassistant.const import CONF_EMAIL, CONF_PASSWORD
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from . import api
from .const import CONF_CONTEXT_KEY, DEFAULT_POLL_INTERVAL, DOMAIN
from .models import AtaDevice, AtaDeviceState

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


async def async_renew_context_key(
    hass: HomeAssistant,
    session: httpx.AsyncClient,
    config_entry: ConfigEntry,
) -> str:
    """Log in again with the stored credentials and save the new context key.

    Returns:
        The new context key.

    Raises:
        ConfigEntryAuthFailed: If credentials are missing or rejected.
        UpdateFailed: If the login fails for any other reason.

    """
    email = config_entry.data.get(CONF_EMAIL)
    password = config_entry.data.get(CONF_PASSWORD)

    if not email or not password:
        error_msg = "Email or password not found in config entry. Cannot log in again."
        _LOGGER.error(error_msg)
        raise ConfigEntryAuthFailed(error_msg)

    try:
        _LOGGER.info("Performing automatic re-authentication with email: %s", email)
        context_key = await api.async_login(session, email, password)
    except api.MelCloudApiAuthError as err:
        error_msg = f"Auto re-authentication failed with stored credentials: {err}"
        _LOGGER.warning(error_msg)
        raise ConfigEntryAuthFailed(error_msg) from err
    except api.MelCloudApiClientError as err:
        error_msg = f"API error during auto re-authentication: {err}"
        _LOGGER.exception("API error during auto re-authentication")
        raise UpdateFailed(error_msg) from err
    except httpx.RequestError as err:
        error_msg = f"Connection error during auto re-authentication: {err}"
        _LOGGER.exception("Connection error during auto re-authentication")
        raise UpdateFailed(error_msg) from err

    hass.config_entries.async_update_entry(
        config_entry,
        data={**config_entry.data, CONF_CONTEXT_KEY: context_key},
    )
    _LOGGER.info("Successfully re-authenticated and stored a new context key")
    return context_key


class MelCloudDeviceCoordinator(DataUpdateCoordinator[dict[int, AtaDeviceState]]):
    """Coordinator that reads MELCloud ATA device states."""

    def __init__(
        self,
        hass: HomeAssistant,
        session: httpx.AsyncClient,
        config_entry: ConfigEntry,
        context_key: str,
        devices: list[AtaDevice],
    ) -> None:
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=f"{DOMAIN}_devices",
            update_interval=timedelta(seconds=DEFAULT_POLL_INTERVAL),
        )
        self.session = session
        self.context_key = context_key
        self.devices = {device.id: device for device in devices}
        self.data = {}

    async def async_reauth(self) -> str:
        """Replace the rejected context key with a fresh one."""
        self.context_key = await async_renew_context_key(
            self.hass, self.session, self.config_entry
        )
        return self.context_key

    async def async_request(
        self,
        request: Callable[..., Awaitable[_T]],
        *args: Any,  # noqa: ANN401
    ) -> _T:
        """Call an API function with the current context key.

        When MELCloud rejects the key, log in again and repeat the call once.
        A second rejection is raised to the caller.
        """
        try:
            return await request(self.session, self.context_key, *args)
        except api.MelCloudApiAuthError as err:
            _LOGGER.warning("Context key rejected, logging in again: %s", err)
            await self.async_reauth()
            return await request(self.session, self.context_key, *args)

    async def _async_update_data(self) -> dict[int, AtaDeviceState]:
        if not self.devices:
            _LOGGER.debug("No MELCloud devices registered for polling")
            return {}

        states: dict[int, AtaDeviceState] = {}
        for device in self.devices.values():
            try:
                states[device.id] = await self.async_request(
                    api.async_get_device_state,
                    device.id,
                    device.building_id,
                )
            except api.MelCloudApiAuthError as err:
                error_msg = f"Authentication error while polling devices: {err}"
                raise UpdateFailed(error_msg) from err
            except api.MelCloudApiClientError as err:
                error_msg = f"API error while polling device {device.id}: {err}"
                raise UpdateFailed(error_msg) from err
            except httpx.RequestError as err:
                error_msg = f"Connection error while polling devices: {err}"
                raise UpdateFailed(error_msg) from err

        _LOGGER.debug("Polled status for %d devices", len(states))
        return states

    def async_apply_state(self, state: AtaDeviceState) -> None:
        """Store the state echoed by a write as the device's current state."""
        data = dict(self.data or {})
        data[state.device_id] = state
        self.async_set_updated_data(data)
