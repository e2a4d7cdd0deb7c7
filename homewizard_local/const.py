"""Constants for the HomeWizard local API library."""

# API endpoints
ENDPOINT_INFO = "/api"
ENDPOINT_DATA = "/api/{api_version}/data"
ENDPOINT_STATE = "/api/{api_version}/state"
ENDPOINT_TELEGRAM = "/api/{api_version}/telegram"
ENDPOINT_IDENTIFY = "/api/{api_version}/identify"

# Zeroconf service announced by the devices
SERVICE_TYPE = "_hwenergy._tcp.local."

# TXT record keys
RECORD_NAME = "product_name"
RECORD_TYPE = "product_type"
RECORD_SERIAL = "serial"
RECORD_PATH = "path"
RECORD_API_ENABLED = "api_enabled"

# Map the literal TXT flag values to booleans, anything else is malformed
API_ENABLED_FLAG = {
    "1": True,
    "0": False,
}

DEFAULT_MONITOR_INTERVAL = 5.0
MIN_MONITOR_INTERVAL = 1.0
DEFAULT_DISCOVERY_DEBOUNCE = 0.75
DEFAULT_QUICK_LOOKUP_SECONDS = 3.0
LOOKUP_TIMEOUT = 5.0

HTTPS_PORT = 443

BRIGHTNESS_MIN = 0
BRIGHTNESS_MAX = 255
