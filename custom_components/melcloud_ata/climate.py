"""Climate entities for MELCloud air-to-air units.

This module exposes every ATA device as a Home Assistant climate entity.
Each service call starts an edit session on the latest device state,
applies the matching setters and sends the pending changes to MELCloud.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx
from homeassistant.components.climate import (
    ATTR_HVAC_MODE,
    ClimateEntity,
    ClimateEntityFeature,
    HVACMode,
)
from homeassistant.const import ATTR_TEMPERATURE, UnitOfTemperature
from homeassistant.exceptions import HomeAssistantError, ServiceValidationError
from homeassistant.helpers.device_registry import DeviceInfo

from . import api
from .const import (
    DOMAIN,
    FAN_AUTO,
    OPERATION_MODE_MAP,
    UNKNOWN,
    VANE_HORIZONTAL_MAP,
    VANE_VERTICAL_MAP,
)
from .models import AtaDevice, AtaDeviceState, InvalidValueError

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .coordinator import MelCloudDeviceCoordinator

_LOGGER = logging.getLogger(__name__)

ATTR_ERROR_CODE = "error_code"
ATTR_HAS_ERROR = "has_error"
ATTR_LAST_COMMUNICATION = "last_communication"


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up climate entities for MELCloud ATA devices."""
    entry_data = hass.data[DOMAIN][entry.entry_id]

    entities = [
        MelCloudAtaClimateEntity(entry_data["coordinator"], device)
        for device in entry_data["devices"]
    ]
    async_add_entities(entities)


class MelCloudAtaClimateEntity(ClimateEntity):
    """Climate entity for a MELCloud air-to-air unit.

    The entity is the capability-aware caller of the state record: it rounds
    temperatures to the device increment and checks fan speeds against the
    number of speeds the unit reports.
    """

    _attr_temperature_unit = UnitOfTemperature.CELSIUS
    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(
        self,
        coordinator: MelCloudDeviceCoordinator,
        device: AtaDevice,
    ) -> None:
        """Initialize the MELCloud climate entity.

        Args:
            coordinator: Device coordinator holding the latest states.
            device: Descriptor of the unit this entity controls.

        """
        self._coordinator = coordinator
        self._device = device
        self._attr_unique_id = str(device.id)
        self._attr_name = device.name
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, str(device.id))},
            manufacturer="Mitsubishi Electric",
            name=device.name,
            serial_number=device.serial_number or None,
        )

        self._attr_hvac_mode = HVACMode.OFF
        self._attr_target_temperature = None
        self._attr_current_temperature = None
        self._attr_fan_mode = FAN_AUTO
        self._coordinator_listener_unsub = None

        self._configure_features()

    def _configure_features(self) -> None:
        """Configure entity features from the device capabilities."""
        self._attr_hvac_modes = [
            HVACMode.OFF,
            *(HVACMode(mode) for mode in OPERATION_MODE_MAP),
        ]
        self._attr_fan_modes = [
            FAN_AUTO,
            *(str(speed) for speed in range(1, self._device.number_of_fan_speeds + 1)),
        ]
        self._attr_swing_modes = list(VANE_VERTICAL_MAP)
        self._attr_swing_horizontal_modes = list(VANE_HORIZONTAL_MAP)
        self._attr_supported_features = (
            ClimateEntityFeature.TARGET_TEMPERATURE
            | ClimateEntityFeature.FAN_MODE
            | ClimateEntityFeature.SWING_MODE
            | ClimateEntityFeature.SWING_HORIZONTAL_MODE
            | ClimateEntityFeature.TURN_OFF
            | ClimateEntityFeature.TURN_ON
        )
        self._attr_target_temperature_step = self._device.temperature_increment

    @property
    def device_state(self) -> AtaDeviceState | None:
        """Return the latest state of the device, if any was read."""
        if not self._coordinator.data:
            return None
        return self._coordinator.data.get(self._device.id)

    @property
    def min_temp(self) -> float:
        return self._device.temperature_range(self._current_mode_label())[0]

    @property
    def max_temp(self) -> float:
        return self._device.temperature_range(self._current_mode_label())[1]

    @property
    def extra_state_attributes(self) -> dict[str, Any] | None:
        state = self.device_state
        if state is None:
            return None
        last_communication = state.last_communication_time
        return {
            ATTR_ERROR_CODE: state.error_code,
            ATTR_HAS_ERROR: state.has_error,
            ATTR_LAST_COMMUNICATION: (
                last_communication.isoformat() if last_communication else None
            ),
        }

    def _current_mode_label(self) -> str | None:
        state = self.device_state
        return state.operation_mode_label if state else None

    async def async_added_to_hass(self) -> None:
        """Subscribe to device updates."""
        await super().async_added_to_hass()

        self._coordinator_listener_unsub = self._coordinator.async_add_listener(
            self._handle_coordinator_update
        )
        self._update_from_coordinator()

    async def async_will_remove_from_hass(self) -> None:
        """Handle entity being removed from Home Assistant."""
        await super().async_will_remove_from_hass()

        if self._coordinator_listener_unsub is not None:
            self._coordinator_listener_unsub()
            self._coordinator_listener_unsub = None

    def _handle_coordinator_update(self) -> None:
        """Handle updated data from the coordinator."""
        self._update_from_coordinator()
        self.async_write_ha_state()

    def _update_from_coordinator(self) -> None:
        """Update entity attributes from the latest device state."""
        state = self.device_state
        if state is None:
            _LOGGER.debug("%s: No device state in coordinator data", self.name)
            return

        if not state.power:
            self._attr_hvac_mode = HVACMode.OFF
        elif state.operation_mode_label == UNKNOWN:
            _LOGGER.warning(
                "%s: Unknown operation mode code %s", self.name, state.operation_mode
            )
            self._attr_hvac_mode = None
        else:
            self._attr_hvac_mode = HVACMode(state.operation_mode_label)

        self._attr_current_temperature = state.room_temperature
        self._attr_target_temperature = state.target_temperature
        self._attr_fan_mode = _known(state.fan_speed_label)
        self._attr_swing_mode = _known(state.vane_vertical_label)
        self._attr_swing_horizontal_mode = _known(state.vane_horizontal_label)

        _LOGGER.debug("Updated %s from coordinator: %s", self.name, state)

    async def _async_send(self, apply: Callable[[AtaDeviceState], None]) -> None:
        """Apply setters to a fresh edit of the device state and send it.

        Args:
            apply: Callable invoking the setters for this change.

        Raises:
            ServiceValidationError: If a value cannot be encoded.
            HomeAssistantError: If no state is known or the write fails.

        """
        current = self.device_state
        if current is None:
            error_msg = f"No state available for {self.name}"
            raise HomeAssistantError(error_msg)

        pending = current.begin_edit()
        try:
            apply(pending)
        except InvalidValueError as err:
            raise ServiceValidationError(str(err)) from err

        try:
            new_state = await self._coordinator.async_request(
                api.async_set_device_state, pending
            )
        except api.MelCloudApiAuthError as err:
            _LOGGER.exception(
                "Authentication error for %s. Please re-configure the integration.",
                self.name,
            )
            error_msg = f"Authentication error while controlling {self.name}"
            raise HomeAssistantError(error_msg) from err
        except api.MelCloudApiClientError as err:
            _LOGGER.exception("API error while sending command to %s", self.name)
            error_msg = f"Failed to send command to {self.name}: {err}"
            raise HomeAssistantError(error_msg) from err
        except httpx.RequestError as err:
            _LOGGER.exception("Connection error while sending command to %s", self.name)
            error_msg = f"Connection error while controlling {self.name}"
            raise HomeAssistantError(error_msg) from err

        self._coordinator.async_apply_state(new_state)

    async def async_set_hvac_mode(self, hvac_mode: HVACMode) -> None:
        """Set the HVAC mode, powering the unit off for HVACMode.OFF."""
        await self._async_send(lambda state: _apply_hvac_mode(state, hvac_mode))

    async def async_set_temperature(self, **kwargs: Any) -> None:  # noqa: ANN401
        """Set the target temperature, and the HVAC mode when given."""
        temperature = kwargs.get(ATTR_TEMPERATURE)
        hvac_mode = kwargs.get(ATTR_HVAC_MODE)
        if temperature is None:
            if hvac_mode is not None:
                await self.async_set_hvac_mode(hvac_mode)
            return

        rounded = self._device.round_temperature(temperature)

        def apply(state: AtaDeviceState) -> None:
            if hvac_mode is not None:
                _apply_hvac_mode(state, hvac_mode)
            state.set_target_temperature(rounded)

        await self._async_send(apply)

    async def async_set_fan_mode(self, fan_mode: str) -> None:
        """Set the fan speed ("auto" or a step up to the device maximum)."""
        if fan_mode != FAN_AUTO and fan_mode not in self._attr_fan_modes:
            error_msg = (
                f"Fan speed {fan_mode} not supported by {self.name} "
                f"(maximum {self._device.number_of_fan_speeds})"
            )
            raise ServiceValidationError(error_msg)

        await self._async_send(lambda state: state.set_fan_speed(fan_mode))

    async def async_set_swing_mode(self, swing_mode: str) -> None:
        """Set the vertical vane position."""
        await self._async_send(lambda state: state.set_vane_vertical(swing_mode))

    async def async_set_swing_horizontal_mode(self, swing_horizontal_mode: str) -> None:
        """Set the horizontal vane position."""
        await self._async_send(
            lambda state: state.set_vane_horizontal(swing_horizontal_mode)
        )

    async def async_turn_on(self) -> None:
        await self._async_send(lambda state: state.set_power(True))

    async def async_turn_off(self) -> None:
        await self._async_send(lambda state: state.set_power(False))


def _apply_hvac_mode(state: AtaDeviceState, hvac_mode: HVACMode | str) -> None:
    if hvac_mode == HVACMode.OFF:
        state.set_power(False)
        return
    state.set_operation_mode(str(hvac_mode))
    state.set_power(True)


def _known(label: str) -> str | None:
    return None if label == UNKNOWN else label
