"""Permission gate: resolves location authorization before tracking starts."""
from __future__ import annotations

import logging

from .const import (
    PERMISSION_ALERT_TITLE,
    PERMISSION_ALERT_MESSAGE,
    OPEN_SETTINGS_LABEL,
    CANCEL_LABEL,
)
from .errors import PermissionDenied
from .models import PermissionResult, PermissionState
from .protocols import AlertPresenter, PermissionsProvider

_LOGGER = logging.getLogger(__name__)


class PermissionGate:
    """
    Issues one location permission request per call.

    LIMITED counts as granted. On denial the user gets a single alert with an
    "open settings" action and the gate resolves to False; it never retries
    on its own. Once granted, later calls return True without prompting.
    """

    def __init__(self, permissions: PermissionsProvider, alerts: AlertPresenter) -> None:
        self._permissions = permissions
        self._alerts = alerts
        self.state = PermissionState.UNKNOWN
        self.last_result: PermissionResult | None = None

    async def acquire_location_permission(self) -> bool:
        if self.state is PermissionState.GRANTED:
            return True

        try:
            result = await self._permissions.request_location_permission()
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Location permission request failed: %s", exc)
            result = PermissionResult.DENIED

        self.last_result = result
        if result.allows_location:
            _LOGGER.debug("Location permission %s", result.value)
            self.state = PermissionState.GRANTED
            return True

        _LOGGER.info("Location permission %s", result.value)
        self.state = PermissionState.DENIED
        self._alerts.show_alert(
            PERMISSION_ALERT_TITLE,
            PERMISSION_ALERT_MESSAGE,
            [(CANCEL_LABEL, None), (OPEN_SETTINGS_LABEL, self._permissions.open_settings)],
        )
        return False

    async def async_require_location_permission(self) -> None:
        """Like acquire_location_permission(), but raises PermissionDenied on refusal."""
        if not await self.acquire_location_permission():
            result = self.last_result.value if self.last_result else "unknown"
            raise PermissionDenied(f"Location permission {result}")
