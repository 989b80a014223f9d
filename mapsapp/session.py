"""
TrackingSession: live location tracking and nearby presence for the map screen.

Responsibilities:
- Gate everything on location permission (PermissionGate).
- Own the single location subscription (PositionSource), the single debounce
  timer (NearbyRefresher) and the realtime connection (PresenceChannel).
- Fan each delivered fix out to the PresencePublisher and, once per session,
  recenter the camera and seed the nearby list as soon as the map is ready.
- Push SessionData snapshots to the map and to listeners whenever the
  displayed entity set or the current fix changes.
- Tear all of the above down in a fixed order, idempotently.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Any, Callable

from .api.nearby import fetch_nearby
from .channel import PresenceChannel
from .config import load_config, watch_options_from_config
from .const import POSITION_ALERT_TITLE, POSITION_ALERT_MESSAGE
from .errors import NearbyQueryFailed, PermissionDenied, PositionTimeout
from .models import Identity, NearbyEntity, PermissionState, PositionFix, RefresherState, Viewport
from .permissions import PermissionGate
from .position_source import PositionSource
from .presence import PresencePublisher
from .protocols import AlertPresenter, GeolocationProvider, MapView, PermissionsProvider
from .refresher import NearbyRefresher
from .session_data import SessionData, SOURCE_REALTIME, SOURCE_REST
from .session_utils import radius_from_viewport

_LOGGER = logging.getLogger(__name__)


class TrackingSession:
    """
    Aggregate root of one visit to the map screen.

    Created when the screen is entered, torn down when it is left. All
    callbacks run on the event loop, so state below needs no locking.
    """

    def __init__(
        self,
        identity: Identity | None,
        map_view: MapView,
        geolocation: GeolocationProvider,
        permissions: PermissionsProvider,
        alerts: AlertPresenter,
        config: dict | None = None,
        channel: PresenceChannel | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config if config is not None else load_config()
        self.identity = identity
        self._map = map_view
        self._alerts = alerts

        self._gate = PermissionGate(permissions, alerts)
        self._source = PositionSource(geolocation, watch_options_from_config(self._config))
        self.channel = channel if channel is not None else PresenceChannel(
            self._config["socket_url"], reconnect=self._config["channel_reconnect"]
        )
        self._publisher = PresencePublisher(
            self.channel,
            identity,
            self._apply_realtime_entities,
            interval=self._config["broadcast_interval"],
            radius_km=self._config["radius_km"],
            call_timeout=self._config["realtime_timeout"],
            clock=clock,
        )
        self._refresher = NearbyRefresher(
            lambda lat, lng, radius_km: self._fetch_nearby(lat, lng, radius_km),
            self._apply_rest_entities,
            lambda: self.active,
            debounce=self._config["refresh_debounce"],
        )

        self.active: bool = False
        self.map_ready: bool = False
        # One-time camera recenter + nearby seed
        self._initial_recenter_done: bool = False
        self._position_alert_shown: bool = False
        # Advanced by every teardown; a start that sees it change aborts
        self._start_token: int = 0
        self._listeners: list[Callable[[SessionData], None]] = []

        self.data = SessionData()

    # ------------------------------------------------------------------
    # Named session state
    # ------------------------------------------------------------------

    @property
    def permission_state(self) -> PermissionState:
        return self._gate.state

    @property
    def current_fix(self) -> PositionFix | None:
        return self.data.current_fix

    @property
    def last_broadcast(self) -> float | None:
        return self._publisher.last_broadcast

    @property
    def watch_handle(self) -> Any:
        return self._source.handle

    @property
    def refresh_pending(self) -> bool:
        return self._refresher.pending

    @property
    def refresher_state(self) -> RefresherState:
        return self._refresher.state

    @property
    def channel_connected(self) -> bool:
        return self.channel.connected

    @property
    def config(self) -> dict:
        return self._config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def async_start(self) -> bool:
        """
        Enter the session.

        Returns False when location permission is refused: nothing is
        started and the map must not be rendered. Otherwise the channel is
        connected, map callbacks are wired and the location watch is open.
        Also returns False if async_teardown() runs while this is still
        awaiting; anything acquired so far is released again.
        """
        if self.active:
            return True

        token = self._start_token
        # Each visit starts from an empty snapshot
        self._publisher.last_broadcast = None
        if self.data != SessionData():
            self._set_updated_data(SessionData())

        try:
            await self._gate.async_require_location_permission()
        except PermissionDenied as e:
            _LOGGER.info("Tracking session not started: %s", e)
            return False
        if token != self._start_token:
            _LOGGER.debug("Tracking session torn down while awaiting permission")
            return False

        self.active = True
        _LOGGER.info("Tracking session started (identity=%s, role=%s)",
                     self.identity.id if self.identity else None,
                     self._publisher.role.name if self._publisher.role else None)

        await self.channel.connect()
        if token != self._start_token:
            _LOGGER.debug("Tracking session torn down while connecting, releasing channel")
            await self.channel.disconnect()
            return False

        self._map.on_ready(self.on_map_ready)
        self._map.on_viewport_change_settled(self.on_viewport_change_settled)
        self._map.on_tap(self.on_map_tap)

        self._source.start(self._handle_fix, self._handle_fix_error)
        return True

    async def async_teardown(self) -> None:
        """
        Leave the session. Safe to call more than once, or before start.

        Order: location watch, debounce timer, realtime channel, then the
        session is marked inactive so late REST results are discarded.
        """
        self._start_token += 1
        self._source.stop()
        self._refresher.cancel_pending()
        await self.channel.disconnect()
        self._refresher.invalidate()
        was_active, self.active = self.active, False
        await self._publisher.async_shutdown()
        # A later async_start() is a new visit to the screen
        self.map_ready = False
        self._initial_recenter_done = False
        self._position_alert_shown = False
        if was_active:
            _LOGGER.info("Tracking session torn down")

    def add_listener(self, callback: Callable[[SessionData], None]) -> Callable[[], None]:
        """Register for snapshot updates; returns a function that unregisters."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    # ------------------------------------------------------------------
    # Map collaborator events
    # ------------------------------------------------------------------

    def on_map_ready(self) -> None:
        if self.map_ready:
            return
        self.map_ready = True
        _LOGGER.debug("Map ready")
        self._maybe_initial_recenter()

    def on_viewport_change_settled(self, viewport: Viewport) -> None:
        if not self.active:
            return
        self._refresher.request_refresh(
            viewport.center_latitude,
            viewport.center_longitude,
            radius_from_viewport(viewport),
        )

    def on_map_tap(self, lat: float, lng: float) -> None:
        _LOGGER.debug("Map tapped at (%s, %s)", lat, lng)

    async def async_recenter(self) -> bool:
        """User-initiated recenter on the current fix, with an immediate refresh."""
        fix = self.current_fix
        if not self.active or fix is None:
            _LOGGER.debug("Recenter ignored: no active session or no fix yet")
            return False
        self._animate_to(fix)
        await self._refresher.refresh_now(fix.latitude, fix.longitude, self._config["radius_km"])
        return True

    # ------------------------------------------------------------------
    # Position source callbacks
    # ------------------------------------------------------------------

    def _handle_fix(self, fix: PositionFix) -> None:
        if not self.active:
            return
        self._set_updated_data(dataclasses.replace(self.data, current_fix=fix))
        self._maybe_initial_recenter()
        self._publisher.on_fix(fix)

    def _handle_fix_error(self, error: Exception) -> None:
        if isinstance(error, PositionTimeout) and not self._position_alert_shown:
            self._position_alert_shown = True
            self._alerts.show_alert(POSITION_ALERT_TITLE, POSITION_ALERT_MESSAGE, [("OK", None)])

    def _maybe_initial_recenter(self) -> None:
        """Fire the one-time recenter once both the map and a fix are available."""
        fix = self.current_fix
        if self._initial_recenter_done or not self.map_ready or fix is None:
            return
        self._initial_recenter_done = True
        self._animate_to(fix)
        self._refresher.refresh_now(fix.latitude, fix.longitude, self._config["radius_km"])

    def _animate_to(self, fix: PositionFix) -> None:
        try:
            self._map.animate_camera_to(
                fix.latitude,
                fix.longitude,
                self._config["recenter_zoom"],
                self._config["recenter_duration_ms"],
            )
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Camera animation failed: %s", exc)

    # ------------------------------------------------------------------
    # Nearby producers
    # ------------------------------------------------------------------

    async def _fetch_nearby(self, lat: float, lng: float, radius_km: float) -> list[NearbyEntity]:
        """Delegate to api.nearby.fetch_nearby with this session's backend settings."""
        entities = await fetch_nearby(
            lat,
            lng,
            radius_km,
            base_url=self._config["api_base_url"],
            timeout=self._config["request_timeout"],
        )
        if entities is None:
            raise NearbyQueryFailed(f"No usable nearby result for ({lat}, {lng}) r={radius_km} km")
        return entities

    def _apply_rest_entities(self, entities: list[NearbyEntity]) -> None:
        self._set_entities(entities, SOURCE_REST)

    def _apply_realtime_entities(self, entities: list[NearbyEntity]) -> None:
        if not self.active:
            _LOGGER.debug("Discarding realtime nearby result after teardown")
            return
        self._set_entities(entities, SOURCE_REALTIME)

    def _set_entities(self, entities: list[NearbyEntity], source: str) -> None:
        # Each producer replaces the whole set; no merging across sources
        self._set_updated_data(
            dataclasses.replace(self.data, entities=list(entities), entities_source=source)
        )
        try:
            self._map.render_markers(self.data.entities)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Rendering %s markers failed: %s", len(entities), exc)

    def _set_updated_data(self, data: SessionData) -> None:
        self.data = data
        for callback in list(self._listeners):
            try:
                callback(data)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Session listener raised: %s", exc)
