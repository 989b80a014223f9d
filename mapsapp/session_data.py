"""
SessionData: immutable snapshot of what the map screen displays.

This is a pure data module with no network or platform dependencies.
"""
from __future__ import annotations

import dataclasses

from .models import NearbyEntity, PositionFix

SOURCE_REST = "rest"
SOURCE_REALTIME = "realtime"


@dataclasses.dataclass(frozen=True)
class SessionData:
    """
    Copy-on-write snapshot of the session's displayed state.

    Always replace via dataclasses.replace(), never mutate in place.
    """

    # Currently displayed nearby entities; replaced wholesale by each producer
    entities: list[NearbyEntity] = dataclasses.field(default_factory=list)

    # Producer of the current entity set: SOURCE_REST, SOURCE_REALTIME or None
    entities_source: str | None = None

    # Latest delivered fix (no history is kept)
    current_fix: PositionFix | None = None
