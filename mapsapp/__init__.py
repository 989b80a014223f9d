import logging

from .const import DOMAIN, VERSION
from .config import load_config
from .models import Identity
from .session import TrackingSession

__all__ = ["DOMAIN", "VERSION", "TrackingSession", "async_setup_session", "async_unload_session"]

_LOGGER = logging.getLogger(__name__)


async def async_setup_session(
    identity: Identity | None,
    map_view,
    geolocation,
    permissions,
    alerts,
    config: dict | None = None,
) -> TrackingSession | None:
    """
    Set up tracking when the map screen is entered.

    Returns the running session, or None when location permission was refused
    (the caller must not render the map in that case).
    """
    session = TrackingSession(
        identity,
        map_view,
        geolocation,
        permissions,
        alerts,
        config=config if config is not None else load_config(),
    )
    try:
        started = await session.async_start()
    except Exception:
        await session.async_teardown()
        raise
    if not started:
        await session.async_teardown()
        return None
    return session


async def async_unload_session(session: TrackingSession | None) -> bool:
    """Tear the session down when the map screen is left, whatever the reason."""
    if session is None:
        return True
    await session.async_teardown()
    return True
