"""
Domain models for the MapsApp tracking session.

This module contains pure data classes with no dependencies on HTTP,
the realtime channel, or any platform collaborator.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Any, Iterable

_LOGGER = logging.getLogger(__name__)


class Role(enum.IntEnum):
    """Backend role ids. Workers broadcast their position, clients look for workers."""

    BROADCASTER = 1   # "trabajador"
    SEEKER = 2        # "cliente"


# Lower index wins when a user holds more than one role
ROLE_PRIORITY: tuple[Role, ...] = (Role.BROADCASTER, Role.SEEKER)


class PermissionState(enum.Enum):
    UNKNOWN = "unknown"
    GRANTED = "granted"
    DENIED = "denied"


class PermissionResult(enum.Enum):
    """Outcome of a platform location permission request."""

    GRANTED = "granted"
    LIMITED = "limited"
    DENIED = "denied"
    BLOCKED = "blocked"

    @property
    def allows_location(self) -> bool:
        return self in (PermissionResult.GRANTED, PermissionResult.LIMITED)


class RefresherState(enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


@dataclasses.dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def to_lng_lat(self) -> list[float]:
        """Return the wire representation, longitude first."""
        return [self.lng, self.lat]


def coordinate_from_lng_lat(pair: Iterable[Any]) -> Coordinate:
    """
    Convert a backend ``[longitude, latitude]`` pair to a Coordinate.

    Raises ValueError when the pair does not hold exactly two numbers.
    """
    values = list(pair)
    if len(values) != 2:
        raise ValueError(f"Expected [lng, lat] pair, got {values!r}")
    lng, lat = float(values[0]), float(values[1])
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
        raise ValueError(f"Coordinate out of range: lng={lng}, lat={lat}")
    return Coordinate(lat=lat, lng=lng)


@dataclasses.dataclass(frozen=True)
class PositionFix:
    """One reported device location sample; ``timestamp_ms`` 0 means the time is unknown."""

    latitude: float
    longitude: float
    accuracy: float | None = None
    speed: float | None = None
    timestamp_ms: int = 0

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(lat=self.latitude, lng=self.longitude)


@dataclasses.dataclass(frozen=True)
class Viewport:
    center_latitude: float
    center_longitude: float
    latitude_span: float
    longitude_span: float


@dataclasses.dataclass(frozen=True)
class NearbyEntity:
    id: int | str
    display_name: str
    coordinate: Coordinate
    last_name: str | None = None
    description: str | None = None
    photo_url: str | None = None


@dataclasses.dataclass(frozen=True)
class WatchOptions:
    """Options handed to the platform location watch."""

    high_accuracy: bool = True
    min_distance_meters: float = 10
    min_interval_ms: int = 5000
    fastest_interval_ms: int = 2000
    timeout_ms: int = 20000
    max_fix_age_ms: int = 10000


def select_presence_role(roles: Iterable[Any] | None) -> Role | None:
    """
    Pick the role that drives presence behaviour.

    Accepts role ids or ``{"id": n}`` dicts in any order. Unknown ids are
    ignored; BROADCASTER takes precedence over SEEKER.
    """
    found: set[Role] = set()
    for raw in roles or ():
        role_id = raw.get("id") if isinstance(raw, dict) else raw
        try:
            found.add(Role(int(role_id)))
        except (TypeError, ValueError):
            _LOGGER.debug("Ignoring unknown role %r", raw)
    for role in ROLE_PRIORITY:
        if role in found:
            return role
    return None


@dataclasses.dataclass(frozen=True)
class Identity:
    """Logged-in user as handed over by the authentication screens."""

    id: int
    roles: tuple[Any, ...] = ()

    @property
    def role(self) -> Role | None:
        return select_presence_role(self.roles)

    @classmethod
    def from_user(cls, user: dict) -> "Identity":
        """Build an Identity from a backend user record (``{"id": .., "roles": [..]}``)."""
        return cls(id=int(user["id"]), roles=tuple(user.get("roles") or ()))
