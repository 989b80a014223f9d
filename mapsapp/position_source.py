"""
PositionSource: owns the single continuous location subscription.

Pure asyncio bookkeeping around a platform GeolocationProvider.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from .errors import PositionTimeout, PositionUnavailable
from .models import PositionFix, WatchOptions
from .protocols import ErrorCallback, FixCallback, GeolocationProvider

_LOGGER = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class PositionSource:
    """
    Single-slot wrapper around the platform location watch.

    Distance/interval filtering is left to the platform (it receives the
    WatchOptions). This class adds what the platform does not guarantee:
    a bound on the wait for the first fix and rejection of stale fixes.
    Delivery errors are reported but never close the subscription.
    """

    def __init__(
        self,
        provider: GeolocationProvider,
        options: WatchOptions,
        wall_clock_ms: Callable[[], int] = _wall_clock_ms,
    ) -> None:
        self._provider = provider
        self._options = options
        self._wall_clock_ms = wall_clock_ms
        self._handle: Any = None
        self._first_fix_timer: asyncio.TimerHandle | None = None
        self._on_fix: FixCallback | None = None
        self._on_error: ErrorCallback | None = None
        self.fix_count: int = 0

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> Any:
        return self._handle

    def start(self, on_fix: FixCallback, on_error: ErrorCallback) -> Any:
        """Open the subscription. Starting twice without stop() is an error."""
        if self._handle is not None:
            raise RuntimeError("Location subscription already active")

        self._on_fix = on_fix
        self._on_error = on_error
        self.fix_count = 0
        self._handle = self._provider.watch_position(self._deliver, self._fail, self._options)
        if self._handle is None:
            raise RuntimeError("Location provider returned no watch handle")

        loop = asyncio.get_running_loop()
        self._first_fix_timer = loop.call_later(
            self._options.timeout_ms / 1000, self._first_fix_timed_out
        )
        _LOGGER.debug("Location watch started (%s)", self._handle)
        return self._handle

    def stop(self) -> None:
        """Close the subscription; safe to call when nothing is open."""
        self._cancel_first_fix_timer()
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            self._provider.clear_watch(handle)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to clear location watch %s: %s", handle, exc)
        _LOGGER.debug("Location watch %s stopped", handle)

    # ------------------------------------------------------------------
    # Provider callbacks
    # ------------------------------------------------------------------

    def _deliver(self, fix: PositionFix) -> None:
        if self._handle is None:
            # Late callback after stop()
            return

        age = self._wall_clock_ms() - fix.timestamp_ms
        if self._options.max_fix_age_ms and fix.timestamp_ms and age > self._options.max_fix_age_ms:
            _LOGGER.debug("Dropping stale fix (%s ms old)", age)
            return

        self._cancel_first_fix_timer()
        self.fix_count += 1
        try:
            self._on_fix(fix)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Fix handler raised: %s", exc)

    def _fail(self, error: Exception) -> None:
        if self._handle is None:
            return
        if not isinstance(error, PositionUnavailable):
            error = PositionUnavailable(str(error))
        _LOGGER.warning("Location error: %s", error)
        self._on_error(error)

    def _first_fix_timed_out(self) -> None:
        self._first_fix_timer = None
        if self._handle is None or self.fix_count:
            return
        self._fail(PositionTimeout(f"No fix within {self._options.timeout_ms} ms"))

    def _cancel_first_fix_timer(self) -> None:
        if self._first_fix_timer is not None:
            self._first_fix_timer.cancel()
            self._first_fix_timer = None
