"""
NearbyRefresher: debounced REST nearby queries with a generation guard.

This is a pure asyncio primitive; the query itself is injected.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .const import REFRESH_DEBOUNCE
from .errors import NearbyQueryFailed
from .models import NearbyEntity, RefresherState

_LOGGER = logging.getLogger(__name__)

FetchNearby = Callable[[float, float, float], Awaitable[list[NearbyEntity] | None]]


class NearbyRefresher:
    """
    Coalesces bursts of refresh requests into one query.

    request_refresh() arms (or re-arms) a single timer; only the last request
    of a burst runs. refresh_now() skips the quiet period. Every query that
    fires takes a new generation number, and its result is applied only if
    no newer query started and ``is_active()`` still holds when it arrives.
    Queries in flight are never cancelled; their results are discarded.
    A ``None`` result means failure: it is logged and nothing is applied.
    """

    def __init__(
        self,
        fetch: FetchNearby,
        on_result: Callable[[list[NearbyEntity]], None],
        is_active: Callable[[], bool],
        debounce: float = REFRESH_DEBOUNCE,
    ) -> None:
        self._fetch = fetch
        self._on_result = on_result
        self._is_active = is_active
        self._debounce = debounce
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self.generation: int = 0

    @property
    def state(self) -> RefresherState:
        if self._timer is not None:
            return RefresherState.PENDING
        if self._tasks:
            return RefresherState.IN_FLIGHT
        return RefresherState.IDLE

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def request_refresh(self, lat: float, lng: float, radius_km: float) -> None:
        """Debounced refresh; cancels any refresh that has not fired yet."""
        self.cancel_pending()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce, self._fire, lat, lng, radius_km)

    def refresh_now(self, lat: float, lng: float, radius_km: float) -> asyncio.Task:
        """Immediate refresh; also supersedes any pending debounced one."""
        self.cancel_pending()
        return self._start(lat, lng, radius_km)

    def cancel_pending(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def invalidate(self) -> None:
        """Discard the result of every query currently in flight."""
        self.generation += 1

    async def async_wait_idle(self) -> None:
        """Wait for queries in flight to settle (their results may be discarded)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fire(self, lat: float, lng: float, radius_km: float) -> None:
        self._timer = None
        self._start(lat, lng, radius_km)

    def _start(self, lat: float, lng: float, radius_km: float) -> asyncio.Task:
        self.generation += 1
        task = asyncio.ensure_future(self._run(self.generation, lat, lng, radius_km))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, generation: int, lat: float, lng: float, radius_km: float) -> None:
        _LOGGER.debug("Nearby refresh #%s at (%s, %s) r=%s km", generation, lat, lng, radius_km)
        try:
            entities = await self._fetch(lat, lng, radius_km)
        except NearbyQueryFailed as exc:
            _LOGGER.warning("Nearby refresh #%s failed, keeping previous results: %s", generation, exc)
            return
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Nearby refresh #%s failed: %s", generation, exc)
            return

        if generation != self.generation or not self._is_active():
            _LOGGER.debug("Discarding result of superseded nearby refresh #%s", generation)
            return
        if entities is None:
            _LOGGER.warning("Nearby refresh #%s failed, keeping previous results", generation)
            return
        self._on_result(entities)
