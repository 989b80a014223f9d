"""
PresenceChannel: the realtime duplex connection of one tracking session.

Wraps a python-socketio AsyncClient. One instance belongs to exactly one
session: it connects when the session starts and disconnects on teardown.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

import socketio
from socketio import exceptions as socketio_exceptions

from .const import (
    EVENT_UPDATE_POSITION,
    EVENT_FIND_NEARBY,
    EVENT_POSITION_UPDATED,
    EVENT_NEARBY_UPDATED,
    REALTIME_CALL_TIMEOUT,
)
from .errors import ChannelDisconnected

_LOGGER = logging.getLogger(__name__)


class PresenceChannel:
    """
    Socket.IO channel carrying presence broadcasts and realtime nearby queries.

    Reconnection is off unless the session asks for it; a dropped connection
    is logged and stays down.
    """

    def __init__(
        self,
        url: str,
        reconnect: bool = False,
        client_factory: Callable[..., Any] = socketio.AsyncClient,
    ) -> None:
        self._url = url
        self._sio = client_factory(reconnection=reconnect)
        self._connected = False
        self._sio.on("connect", self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)
        self._sio.on("connect_error", self._on_connect_error)
        self._sio.on(EVENT_POSITION_UPDATED, self._on_position_updated)
        self._sio.on(EVENT_NEARBY_UPDATED, self._on_nearby_updated)

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Open the connection; returns False (logged) if it cannot be established."""
        if self._connected:
            return True
        try:
            await self._sio.connect(self._url, transports=["websocket"])
        except socketio_exceptions.ConnectionError as exc:
            _LOGGER.warning("Realtime channel connection to %s failed: %s", self._url, exc)
            return False
        self._connected = True
        _LOGGER.info("Realtime channel connected to %s", self._url)
        return True

    async def disconnect(self) -> None:
        """Close the connection; safe to call repeatedly."""
        was_connected = self._connected
        self._connected = False
        try:
            await self._sio.disconnect()
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Error while disconnecting realtime channel: %s", exc)
        if was_connected:
            _LOGGER.info("Realtime channel disconnected")

    async def update_position(self, user_id: int, lat: float, lng: float) -> None:
        """Fire-and-forget position broadcast."""
        self._require_connected()
        await self._sio.emit(EVENT_UPDATE_POSITION, {"userId": user_id, "lat": lat, "lng": lng})

    async def find_nearby(self, lat: float, lng: float, radius_km: float,
                          timeout: float = REALTIME_CALL_TIMEOUT) -> Any:
        """Correlated request; returns the raw acknowledgement payload."""
        self._require_connected()
        return await self._sio.call(
            EVENT_FIND_NEARBY,
            {"lat": lat, "lng": lng, "radio": int(round(radius_km))},
            timeout=timeout,
        )

    def _require_connected(self) -> None:
        if not self._connected:
            raise ChannelDisconnected("Realtime channel is not connected")

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def _on_connect(self) -> None:
        # Also fires after an automatic reconnect when reconnection is enabled
        self._connected = True
        _LOGGER.debug("Realtime channel handshake complete")

    async def _on_disconnect(self, *args) -> None:
        if self._connected:
            _LOGGER.warning("Realtime channel dropped by the server")
        self._connected = False

    async def _on_connect_error(self, data=None) -> None:
        _LOGGER.warning("Realtime channel connect error: %s", data)

    async def _on_position_updated(self, data=None) -> None:
        _LOGGER.debug("position-updated: %s", data)

    async def _on_nearby_updated(self, data=None) -> None:
        _LOGGER.debug("nearby-updated: %s", data)
