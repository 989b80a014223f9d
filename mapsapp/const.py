DOMAIN = "mapsapp"
VERSION = "0.3.0"

API_BASE_URL = "https://geolocalizacion-backend-wtnq.onrender.com"
SOCKET_URL = API_BASE_URL

NEARBY_PATH = "trabajadores/cercanos"
USERS_PATH = "usuarios"

# Realtime channel events
EVENT_UPDATE_POSITION = "update-position"
EVENT_FIND_NEARBY = "find-nearby-realtime"
EVENT_POSITION_UPDATED = "position-updated"
EVENT_NEARBY_UPDATED = "nearby-updated"

# Session timing (seconds)
BROADCAST_INTERVAL = 5.0     # at most one realtime action per window
REFRESH_DEBOUNCE = 0.6       # quiet period before a viewport refresh fires
REALTIME_CALL_TIMEOUT = 10   # wait for the find-nearby acknowledgement

# Nearby radius (km)
DEFAULT_RADIUS_KM = 5
MIN_RADIUS_KM = 1
MAX_RADIUS_KM = 50
KM_PER_DEGREE = 111.32

# Location watch defaults
WATCH_HIGH_ACCURACY = True
WATCH_MIN_DISTANCE_M = 10
WATCH_MIN_INTERVAL_MS = 5000
WATCH_FASTEST_INTERVAL_MS = 2000
WATCH_TIMEOUT_MS = 20000
WATCH_MAX_FIX_AGE_MS = 10000

# Camera
RECENTER_ZOOM = 15
RECENTER_DURATION_MS = 800

# Initial region shown before the first fix: Lima, Peru
INITIAL_REGION = {
    "latitude": -12.0464,
    "longitude": -77.0428,
    "latitude_delta": 0.05,
    "longitude_delta": 0.05,
}

# HTTP
REQUEST_TIMEOUT = 10         # seconds, multiplied by attempt number for each retry
REQUEST_ATTEMPTS = 3
REGISTER_TIMEOUT = 15

# User-facing texts
PERMISSION_ALERT_TITLE = "Location permission required"
PERMISSION_ALERT_MESSAGE = "Enable location access in Settings to see who is nearby."
OPEN_SETTINGS_LABEL = "Open settings"
CANCEL_LABEL = "Cancel"
POSITION_ALERT_TITLE = "Location unavailable"
POSITION_ALERT_MESSAGE = "We could not get your current location. Check that GPS is turned on."
REGISTER_FAILED_MESSAGE = "Could not create the account. Try again later."
