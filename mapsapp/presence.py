"""
PresencePublisher: rate-limited realtime actions driven by position fixes.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from .api.nearby import parse_nearby_entities
from .channel import PresenceChannel
from .const import BROADCAST_INTERVAL, DEFAULT_RADIUS_KM, REALTIME_CALL_TIMEOUT
from .errors import ChannelDisconnected
from .models import Identity, NearbyEntity, PositionFix, Role

_LOGGER = logging.getLogger(__name__)


class PresencePublisher:
    """
    Turns position fixes into realtime channel traffic.

    At most one action per ``interval`` seconds per session, whatever the
    role. Broadcasters announce their position; seekers ask for nearby
    broadcasters and hand the answer to ``on_results``. No identity or an
    unrecognised role means no action and the window is left untouched.
    """

    def __init__(
        self,
        channel: PresenceChannel,
        identity: Identity | None,
        on_results: Callable[[list[NearbyEntity]], None],
        interval: float = BROADCAST_INTERVAL,
        radius_km: float = DEFAULT_RADIUS_KM,
        call_timeout: float = REALTIME_CALL_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._channel = channel
        self._identity = identity
        self._on_results = on_results
        self._interval = interval
        self._radius_km = radius_km
        self._call_timeout = call_timeout
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()

        # Arrival time of the fix that triggered the last action
        self.last_broadcast: float | None = None

    @property
    def role(self) -> Role | None:
        return self._identity.role if self._identity is not None else None

    def on_fix(self, fix: PositionFix) -> bool:
        """Schedule the role's action for this fix; returns True if one was taken."""
        role = self.role
        if role is None:
            return False

        now = self._clock()
        if self.last_broadcast is not None and now - self.last_broadcast < self._interval:
            return False
        self.last_broadcast = now

        if role is Role.BROADCASTER:
            coro = self._broadcast(fix)
        else:
            coro = self._query_nearby(fix)
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _broadcast(self, fix: PositionFix) -> None:
        try:
            await self._channel.update_position(self._identity.id, fix.latitude, fix.longitude)
        except ChannelDisconnected:
            _LOGGER.debug("Skipping position broadcast, channel is down")
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Position broadcast failed: %s", exc)

    async def _query_nearby(self, fix: PositionFix) -> None:
        try:
            raw = await self._channel.find_nearby(
                fix.latitude, fix.longitude, self._radius_km, timeout=self._call_timeout
            )
        except ChannelDisconnected:
            _LOGGER.debug("Skipping realtime nearby query, channel is down")
            return
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Realtime nearby query failed: %s", exc)
            return

        entities = parse_nearby_entities(raw)
        if entities is None:
            return
        self._on_results(entities)

    async def async_shutdown(self) -> None:
        """Cancel in-flight channel actions."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
