"""
Protocol definitions for the platform collaborators the session drives.

The session never imports a concrete map widget, location service or
permission library; the host application passes objects satisfying these.
"""
from __future__ import annotations

from typing import Any, Callable, Protocol, Sequence

from .models import NearbyEntity, PermissionResult, PositionFix, Viewport, WatchOptions

FixCallback = Callable[[PositionFix], None]
ErrorCallback = Callable[[Exception], None]
AlertButton = tuple[str, Callable[[], None] | None]


class MapView(Protocol):
    """Map rendering widget."""

    def render_markers(self, entities: Sequence[NearbyEntity]) -> None: ...

    def animate_camera_to(self, lat: float, lng: float, zoom: float, duration_ms: int) -> None: ...

    def on_ready(self, callback: Callable[[], None]) -> None: ...

    def on_viewport_change_settled(self, callback: Callable[[Viewport], None]) -> None: ...

    def on_tap(self, callback: Callable[[float, float], None]) -> None: ...


class GeolocationProvider(Protocol):
    """Continuous device location subscription."""

    def watch_position(self, on_fix: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> Any: ...

    def clear_watch(self, handle: Any) -> None: ...


class PermissionsProvider(Protocol):
    """Platform permission prompts."""

    async def request_location_permission(self) -> PermissionResult: ...

    def open_settings(self) -> None: ...


class AlertPresenter(Protocol):
    """User-facing modal alerts."""

    def show_alert(self, title: str, message: str, buttons: Sequence[AlertButton]) -> None: ...
