"""Constants for the MELCloud ATA integration.

This module contains the API endpoints, configuration keys and the integer
code tables used to translate device state to and from human-facing labels.
"""

DOMAIN = "melcloud_ata"

BASE_URL = "https://app.melcloud.com/Mitsubishi.Wifi.Client"
APP_VERSION = "1.19.1.1"
USER_AGENT = "melcloud-ata"

DEFAULT_TIMEOUT = 10.0
DEFAULT_POLL_INTERVAL = 300  # Device/Get is rate limited by MELCloud

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_TIMEOUT = "timeout_error"
ERROR_API_ERROR = "api_error"
ERROR_UNKNOWN = "unknown_error"

CONF_CONTEXT_KEY = "context_key"

DEVICE_TYPE_ATA = 0

UNKNOWN = "unknown"

MODE_HEAT = "heat"
MODE_DRY = "dry"
MODE_COOL = "cool"
MODE_FAN_ONLY = "fan_only"
MODE_HEAT_COOL = "heat_cool"

FAN_AUTO = "auto"

VANE_AUTO = "auto"
VANE_SWING = "swing"
VANE_SPLIT = "split"  # Horizontal only

OPERATION_MODE_MAP = {
    MODE_HEAT: 1,
    MODE_DRY: 2,
    MODE_COOL: 3,
    MODE_FAN_ONLY: 7,
    MODE_HEAT_COOL: 8,
}
OPERATION_MODE_REVERSE_MAP = {value: key for key, value in OPERATION_MODE_MAP.items()}

FAN_SPEED_AUTO = 0

VANE_VERTICAL_MAP = {
    VANE_AUTO: 0,
    "1": 1,
    "2": 2,
    "3": 3,
    "4": 4,
    "5": 5,
    VANE_SWING: 7,
}
VANE_VERTICAL_REVERSE_MAP = {value: key for key, value in VANE_VERTICAL_MAP.items()}

VANE_HORIZONTAL_MAP = {
    VANE_AUTO: 0,
    "1": 1,
    "2": 2,
    "3": 3,
    "4": 4,
    "5": 5,
    VANE_SPLIT: 8,
    VANE_SWING: 12,
}
VANE_HORIZONTAL_REVERSE_MAP = {
    value: key for key, value in VANE_HORIZONTAL_MAP.items()
}

# Fallbacks for devices that report zero or no capability data
DEFAULT_TEMPERATURE_INCREMENT = 0.5
DEFAULT_MIN_TEMP = 10.0
DEFAULT_MAX_TEMP = 31.0
DEFAULT_NUMBER_OF_FAN_SPEEDS = 5
