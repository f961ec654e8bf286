"""Pytest configuration and fixtures for MELCloud ATA tests."""

from typing import Any

import pytest

SAMPLE_CONTEXT_KEY = "0123456789ABCDEF0123456789ABCD"
SAMPLE_DEVICE_ID = 101
SAMPLE_BUILDING_ID = 7


def create_device_entry(device_id: int, name: str, **extra: Any) -> dict[str, Any]:  # noqa: ANN401
    """Create a ListDevices device entry.

    Args:
        device_id: Device identifier.
        name: Device name.
        **extra: Fields merged into the nested Device object.

    Returns:
        A dictionary shaped like one entry of a building structure.

    """
    return {
        "DeviceID": device_id,
        "BuildingID": SAMPLE_BUILDING_ID,
        "DeviceName": name,
        "MacAddress": "aa:bb:cc:dd:ee:ff",
        "SerialNumber": f"SN{device_id}",
        "AccessLevel": 4,
        "Device": {
            "DeviceType": 0,
            "WifiSignalStrength": -60,
            "TemperatureIncrement": 0.5,
            "MinTempHeat": 10.0,
            "MaxTempHeat": 31.0,
            "MinTempCoolDry": 16.0,
            "MaxTempCoolDry": 31.0,
            "MinTempAutomatic": 16.0,
            "MaxTempAutomatic": 31.0,
            "NumberOfFanSpeeds": 5,
            **extra,
        },
    }


@pytest.fixture
def sample_context_key() -> str:
    """Fixture providing a session context key."""
    return SAMPLE_CONTEXT_KEY


@pytest.fixture
def sample_login_response() -> dict[str, Any]:
    """Fixture providing a successful ClientLogin response."""
    return {
        "ErrorId": None,
        "ErrorCode": None,
        "LoginStatus": 0,
        "LoginMinutes": 0,
        "LoginData": {"ContextKey": SAMPLE_CONTEXT_KEY, "Name": "Test User"},
    }


@pytest.fixture
def sample_devices_response() -> list[dict[str, Any]]:
    """Fixture providing a ListDevices response.

    Devices sit at the building, area, floor and floor-area levels, and
    device 101 is listed twice.
    """
    return [
        {
            "ID": SAMPLE_BUILDING_ID,
            "Name": "Home",
            "Structure": {
                "Devices": [create_device_entry(SAMPLE_DEVICE_ID, "Living Room")],
                "Areas": [
                    {"Devices": [create_device_entry(102, "Office")]},
                ],
                "Floors": [
                    {
                        "Devices": [
                            create_device_entry(103, "Bedroom"),
                            create_device_entry(SAMPLE_DEVICE_ID, "Living Room"),
                        ],
                        "Areas": [
                            {"Devices": [create_device_entry(104, "Attic")]},
                        ],
                    },
                ],
            },
        },
    ]


@pytest.fixture
def sample_device_state_response() -> dict[str, Any]:
    """Fixture providing a Device/Get response for an ATA unit."""
    return {
        "DeviceID": SAMPLE_DEVICE_ID,
        "DeviceType": 0,
        "MacAddress": "aa:bb:cc:dd:ee:ff",
        "SerialNumber": "SN101",
        "Power": True,
        "RoomTemperature": 21.5,
        "SetTemperature": 23.0,
        "OperationMode": 1,
        "SetFanSpeed": 3,
        "VaneHorizontal": 8,
        "VaneVertical": 7,
        "NumberOfFanSpeeds": 5,
        "ErrorCode": 8000,
        "HasError": False,
        "LastCommunication": "2024-03-01T10:15:30.1234567",
        "NextCommunication": "2024-03-01T10:16:30.1234567",
        "EffectiveFlags": 0,
        "HasPendingCommand": False,
        "Offline": False,
    }
