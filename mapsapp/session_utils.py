"""
Geometry helpers for the tracking session.

No platform or network imports, only pure functions.
"""
from __future__ import annotations

import math

from .const import KM_PER_DEGREE, MIN_RADIUS_KM, MAX_RADIUS_KM
from .models import Viewport


def radius_from_viewport(viewport: Viewport) -> int:
    """
    Query radius (km) that covers the visible map.

    Half of the larger visible span, with the longitude span scaled by the
    cosine of the centre latitude, rounded up and clamped to the accepted range.
    """
    lat_km = abs(viewport.latitude_span) * KM_PER_DEGREE
    lng_km = abs(viewport.longitude_span) * KM_PER_DEGREE * math.cos(math.radians(viewport.center_latitude))
    radius = math.ceil(max(lat_km, lng_km) / 2)
    return int(min(max(radius, MIN_RADIUS_KM), MAX_RADIUS_KM))
