"""API client for MELCloud air-to-air (ATA) units.

This module provides functions to interact with the MELCloud API,
including authentication, device discovery, state reads and state writes.
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Any

import httpx
from homeassistant.core import HomeAssistant
from homeassistant.helpers.httpx_client import create_async_httpx_client

from .const import APP_VERSION, BASE_URL, DEFAULT_TIMEOUT, DEVICE_TYPE_ATA, USER_AGENT
from .models import AtaDevice, AtaDeviceState

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401


class MelCloudApiClientError(Exception):
    """Base exception for MELCloud API client errors."""


class MelCloudApiAuthError(MelCloudApiClientError):
    """Exception raised for authentication errors."""


def create_headers(context_key: str | None = None) -> dict[str, str]:
    """Create HTTP headers for MELCloud API requests.

    Args:
        context_key: Optional session context key from a previous login.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {
        "accept": "application/json",
        "content-type": "application/json",
        "user-agent": USER_AGENT,
    }
    if context_key:
        headers["X-MitsContextKey"] = context_key
    return headers


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error."""
    return status >= HTTP_BAD_REQUEST


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code indicates authentication error."""
    return status == HTTP_UNAUTHORIZED


def is_login_error(data: dict[str, Any]) -> bool:
    """Check if a login response carries an error id or code.

    Args:
        data: ClientLogin response data dictionary.

    Returns:
        True if ErrorId or ErrorCode is set, False otherwise.

    """
    return data.get("ErrorId") is not None or data.get("ErrorCode") is not None


def validate_response(response: httpx.Response) -> Any:  # noqa: ANN401
    """Validate HTTP response and return parsed JSON data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON data from response.

    Raises:
        MelCloudApiAuthError: If authentication error is detected.
        MelCloudApiClientError: If the request failed or the body is not JSON.

    """
    _validate_http_status(response)
    try:
        return response.json()
    except ValueError as err:
        error_msg = f"Invalid JSON in response: {err}"
        raise MelCloudApiClientError(error_msg) from err


def _validate_http_status(response: httpx.Response) -> None:
    if not is_http_error(response.status_code):
        return

    if is_auth_error(response.status_code):
        auth_error = "Authentication error"
        raise MelCloudApiAuthError(auth_error)

    client_error = f"Request failed: {response.status_code}"
    try:
        details = response.json()
    except ValueError:
        details = None
    if details:
        client_error = f"{client_error}, details: {details}"
    raise MelCloudApiClientError(client_error)


def extract_context_key(data: dict[str, Any]) -> str:
    """Extract the session context key from a ClientLogin response.

    Args:
        data: ClientLogin response data dictionary.

    Returns:
        Context key to send as X-MitsContextKey.

    Raises:
        MelCloudApiAuthError: If the response reports a login error.
        MelCloudApiClientError: If the response holds no context key.

    """
    if is_login_error(data):
        error_msg = (
            f"Login failed: ErrorId={data.get('ErrorId')}, "
            f"ErrorCode={data.get('ErrorCode')}"
        )
        raise MelCloudApiAuthError(error_msg)

    context_key = (data.get("LoginData") or {}).get("ContextKey")
    if not context_key:
        error_msg = "Login response did not contain ContextKey"
        raise MelCloudApiClientError(error_msg)
    return context_key


def _iter_device_entries(buildings: Iterable[dict[str, Any]]) -> Iterator[dict]:
    """Yield device entries from buildings, areas, floors and floor areas."""
    for building in buildings:
        structure = building.get("Structure") or {}
        yield from structure.get("Devices") or []
        for area in structure.get("Areas") or []:
            yield from area.get("Devices") or []
        for floor in structure.get("Floors") or []:
            yield from floor.get("Devices") or []
            for area in floor.get("Areas") or []:
                yield from area.get("Devices") or []


def extract_devices(data: list[dict[str, Any]]) -> list[AtaDevice]:
    """Flatten a ListDevices response into a list of devices.

    A device listed at more than one level of the building tree is
    returned once, in the order it was first seen.

    Args:
        data: ListDevices response, a list of buildings.

    Returns:
        List of AtaDevice objects.

    Raises:
        MelCloudApiClientError: If a device entry is malformed.

    """
    devices: list[AtaDevice] = []
    seen: set[int] = set()

    try:
        for entry in _iter_device_entries(data or []):
            device = AtaDevice.from_api(entry)
            if device.id in seen:
                continue
            seen.add(device.id)
            devices.append(device)
    except (KeyError, TypeError, ValueError, AttributeError) as err:
        error_msg = f"Malformed device list: {err}"
        raise MelCloudApiClientError(error_msg) from err

    return devices


def extract_device_state(data: dict[str, Any], building_id: int) -> AtaDeviceState:
    """Decode a device state response, restoring the building id.

    Raises:
        MelCloudApiClientError: If the response is not a device state.

    """
    try:
        return AtaDeviceState.from_api(data, building_id=building_id)
    except (KeyError, TypeError, ValueError, AttributeError) as err:
        error_msg = f"Malformed device state: {err}"
        raise MelCloudApiClientError(error_msg) from err


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client for MELCloud API.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient.

    """
    return create_async_httpx_client(hass, timeout=DEFAULT_TIMEOUT)


async def async_login(
    session: httpx.AsyncClient,
    email: str,
    password: str,
) -> str:
    """Authenticate with MELCloud using email and password.

    Args:
        session: HTTP client session.
        email: User email address.
        password: User password.

    Returns:
        Context key for subsequent requests.

    Raises:
        MelCloudApiAuthError: If authentication fails.
        MelCloudApiClientError: If API request fails.

    """
    url = f"{BASE_URL}/Login/ClientLogin"
    payload = {
        "Email": email,
        "Password": password,
        "Language": 0,
        "AppVersion": APP_VERSION,
        "Persist": True,
        "CaptchaResponse": None,
    }

    _LOGGER.debug("Authenticating with MELCloud API")
    response = await session.post(url, headers=create_headers(), json=payload)
    data = validate_response(response)
    context_key = extract_context_key(data)
    _LOGGER.debug("Successfully authenticated with MELCloud API")
    return context_key


async def async_list_devices(
    session: httpx.AsyncClient,
    context_key: str,
) -> list[AtaDevice]:
    """Fetch every device visible to the account.

    Raises:
        MelCloudApiAuthError: If authentication fails.
        MelCloudApiClientError: If API request fails.

    """
    url = f"{BASE_URL}/User/ListDevices"

    _LOGGER.debug("Fetching devices from MELCloud API")
    response = await session.get(url, headers=create_headers(context_key))
    data = validate_response(response)
    devices = extract_devices(data)
    _LOGGER.debug("Retrieved %d devices from MELCloud API", len(devices))
    return devices


async def async_get_device_state(
    session: httpx.AsyncClient,
    context_key: str,
    device_id: int,
    building_id: int,
) -> AtaDeviceState:
    """Fetch the current state of one device.

    MELCloud rate limits this endpoint; avoid calling it too frequently.

    Args:
        session: HTTP client session.
        context_key: Session context key.
        device_id: Target device identifier.
        building_id: Building the device belongs to.

    Returns:
        Decoded state with an empty change set.

    Raises:
        MelCloudApiAuthError: If authentication fails.
        MelCloudApiClientError: If API request fails.

    """
    url = f"{BASE_URL}/Device/Get"
    params = {"id": device_id, "buildingID": building_id}

    _LOGGER.debug("Fetching state of device %s (building %s)", device_id, building_id)
    response = await session.get(
        url, headers=create_headers(context_key), params=params
    )
    data = validate_response(response)
    return extract_device_state(data, building_id)


async def async_set_device_state(
    session: httpx.AsyncClient,
    context_key: str,
    state: AtaDeviceState,
) -> AtaDeviceState:
    """Send the pending changes of a state to its device.

    The state must carry at least one effective flag; the check happens
    before any request is made.

    Args:
        session: HTTP client session.
        context_key: Session context key.
        state: State modified through its setters.

    Returns:
        The state echoed by MELCloud, to be used as the new current state.

    Raises:
        NoPendingChangesError: If the state has no pending changes.
        MelCloudApiAuthError: If authentication fails.
        MelCloudApiClientError: If API request fails or the device is not ATA.

    """
    payload = state.prepare_command()

    if state.device_type != DEVICE_TYPE_ATA:
        error_msg = f"Unsupported device type for writes: {state.device_type}"
        raise MelCloudApiClientError(error_msg)

    url = f"{BASE_URL}/Device/SetAta"

    _LOGGER.debug(
        "Sending command to device %s with flags 0x%X",
        state.device_id,
        state.effective_flags.value,
    )
    response = await session.post(
        url, headers=create_headers(context_key), json=payload
    )
    data = validate_response(response)
    new_state = extract_device_state(data, state.building_id)
    _LOGGER.debug("Device %s accepted command", state.device_id)
    return new_state
