"""Session configuration: defaults, environment overrides and validation."""
from __future__ import annotations

import logging
import os
from typing import Any

import voluptuous as vol
from dotenv import load_dotenv

from .const import (
    API_BASE_URL,
    SOCKET_URL,
    DEFAULT_RADIUS_KM,
    MIN_RADIUS_KM,
    MAX_RADIUS_KM,
    BROADCAST_INTERVAL,
    REFRESH_DEBOUNCE,
    REALTIME_CALL_TIMEOUT,
    REQUEST_TIMEOUT,
    RECENTER_ZOOM,
    RECENTER_DURATION_MS,
    WATCH_HIGH_ACCURACY,
    WATCH_MIN_DISTANCE_M,
    WATCH_MIN_INTERVAL_MS,
    WATCH_FASTEST_INTERVAL_MS,
    WATCH_TIMEOUT_MS,
    WATCH_MAX_FIX_AGE_MS,
)
from .errors import ConfigError
from .models import WatchOptions

_LOGGER = logging.getLogger(__name__)

http_url = vol.All(str, vol.Match(r"^https?://[^\s/]+", msg="expected an http(s) URL"))
positive_float = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))
non_negative_int = vol.All(vol.Coerce(int), vol.Range(min=0))
positive_int = vol.All(vol.Coerce(int), vol.Range(min=1))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required("api_base_url", default=API_BASE_URL): http_url,
        vol.Required("socket_url", default=SOCKET_URL): http_url,
        vol.Required("radius_km", default=DEFAULT_RADIUS_KM): vol.All(
            vol.Coerce(float), vol.Range(min=MIN_RADIUS_KM, max=MAX_RADIUS_KM)
        ),
        vol.Required("broadcast_interval", default=BROADCAST_INTERVAL): positive_float,
        vol.Required("refresh_debounce", default=REFRESH_DEBOUNCE): positive_float,
        vol.Required("realtime_timeout", default=REALTIME_CALL_TIMEOUT): positive_float,
        vol.Required("request_timeout", default=REQUEST_TIMEOUT): positive_int,
        vol.Required("channel_reconnect", default=False): vol.Boolean(),
        vol.Required("recenter_zoom", default=RECENTER_ZOOM): vol.All(vol.Coerce(float), vol.Range(min=0, max=22)),
        vol.Required("recenter_duration_ms", default=RECENTER_DURATION_MS): non_negative_int,
        vol.Required("watch_high_accuracy", default=WATCH_HIGH_ACCURACY): vol.Boolean(),
        vol.Required("watch_min_distance_m", default=WATCH_MIN_DISTANCE_M): vol.All(vol.Coerce(float), vol.Range(min=0)),
        vol.Required("watch_min_interval_ms", default=WATCH_MIN_INTERVAL_MS): non_negative_int,
        vol.Required("watch_fastest_interval_ms", default=WATCH_FASTEST_INTERVAL_MS): non_negative_int,
        vol.Required("watch_timeout_ms", default=WATCH_TIMEOUT_MS): positive_int,
        vol.Required("watch_max_fix_age_ms", default=WATCH_MAX_FIX_AGE_MS): non_negative_int,
    }
)

# Environment variable → config key
ENV_KEYS: dict[str, str] = {
    "MAPSAPP_API_URL": "api_base_url",
    "MAPSAPP_SOCKET_URL": "socket_url",
    "MAPSAPP_RADIUS_KM": "radius_km",
    "MAPSAPP_CHANNEL_RECONNECT": "channel_reconnect",
}


def validate_config(data: dict[str, Any]) -> dict[str, Any]:
    """Apply defaults and validate; raises ConfigError on bad values."""
    try:
        return CONFIG_SCHEMA(dict(data))
    except vol.Invalid as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def load_config(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Build the session configuration.

    Precedence: explicit overrides, then environment (a ``.env`` file is
    loaded if present), then defaults from const.
    """
    load_dotenv()
    data: dict[str, Any] = {}
    for env_key, key in ENV_KEYS.items():
        value = os.getenv(env_key)
        if value not in (None, ""):
            data[key] = value
    if overrides:
        data.update(overrides)
    config = validate_config(data)
    _LOGGER.debug("Config loaded: api=%s socket=%s", config["api_base_url"], config["socket_url"])
    return config


def watch_options_from_config(config: dict[str, Any]) -> WatchOptions:
    return WatchOptions(
        high_accuracy=config["watch_high_accuracy"],
        min_distance_meters=config["watch_min_distance_m"],
        min_interval_ms=config["watch_min_interval_ms"],
        fastest_interval_ms=config["watch_fastest_interval_ms"],
        timeout_ms=config["watch_timeout_ms"],
        max_fix_age_ms=config["watch_max_fix_age_ms"],
    )
