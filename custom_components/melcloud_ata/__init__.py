"""The MELCloud ATA integration."""

from __future__ import annotations

import logging

import httpx
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import UpdateFailed

from . import api
from .api import create_session_client
from .const import CONF_CONTEXT_KEY, DOMAIN
from .coordinator import MelCloudDeviceCoordinator, async_renew_context_key

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.CLIMATE]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up MELCloud ATA integration for entry %s", entry.entry_id)

    if CONF_CONTEXT_KEY not in entry.data:
        _LOGGER.error("Missing context key in configuration for entry %s", entry.entry_id)
        return False

    session = create_session_client(hass)
    context_key = entry.data[CONF_CONTEXT_KEY]

    try:
        _LOGGER.debug("Fetching devices from MELCloud API")
        try:
            devices = await api.async_list_devices(session, context_key)
        except api.MelCloudApiAuthError as err:
            _LOGGER.warning(
                "Context key rejected for entry %s, logging in again: %s",
                entry.entry_id,
                str(err),
            )
            context_key = await async_renew_context_key(hass, session, entry)
            devices = await api.async_list_devices(session, context_key)
        _LOGGER.info("Successfully retrieved %d devices from MELCloud API", len(devices))
    except api.MelCloudApiAuthError as err:
        error_msg = f"Authentication failed for entry {entry.entry_id}: {err}"
        raise ConfigEntryAuthFailed(error_msg) from err
    except UpdateFailed as err:
        _LOGGER.error("Login failed for entry %s: %s", entry.entry_id, str(err))
        return False
    except api.MelCloudApiClientError as err:
        _LOGGER.error("API client error for entry %s: %s", entry.entry_id, str(err))
        return False
    except httpx.ConnectError as err:
        _LOGGER.error("Connection error for entry %s: %s", entry.entry_id, str(err))
        return False
    except httpx.TimeoutException as err:
        _LOGGER.error("Timeout error for entry %s: %s", entry.entry_id, str(err))
        return False

    ata_devices = [device for device in devices if device.is_ata]
    for device in devices:
        if not device.is_ata:
            _LOGGER.info(
                "Skipping device %s (%s): unsupported device type %s",
                device.id,
                device.name,
                device.device_type,
            )

    coordinator = MelCloudDeviceCoordinator(
        hass, session, entry, context_key, ata_devices
    )
    await coordinator.async_config_entry_first_refresh()

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "coordinator": coordinator,
        "devices": ata_devices,
    }
    _LOGGER.debug(
        "Stored data for entry %s: %d devices", entry.entry_id, len(ata_devices)
    )

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.info(
        "Successfully setup MELCloud ATA integration for entry %s", entry.entry_id
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading MELCloud ATA integration for entry %s", entry.entry_id)

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        if DOMAIN in hass.data and entry.entry_id in hass.data[DOMAIN]:
            hass.data[DOMAIN].pop(entry.entry_id)
            _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
        _LOGGER.info(
            "Successfully unloaded MELCloud ATA integration for entry %s",
            entry.entry_id,
        )
    else:
        _LOGGER.warning("Failed to unload some platforms for entry %s", entry.entry_id)

    return unload_ok
