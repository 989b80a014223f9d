"""
Low-level nearby-entity fetching from the MapsApp backend.

Responsible for:
- Querying the REST endpoint for workers around a coordinate
- Mapping raw records (REST or realtime) onto NearbyEntity instances,
  including the ``[longitude, latitude]`` to internal axis conversion
"""
import asyncio
import logging

from mapsapp.const import API_BASE_URL, NEARBY_PATH, REQUEST_TIMEOUT
from mapsapp.models import NearbyEntity, coordinate_from_lng_lat
from mapsapp.requests import make_request, build_url, ApiResponseError

_LOGGER = logging.getLogger(__name__)


def _record_coordinates(record: dict):
    location = record.get("ubicacion")
    if isinstance(location, dict) and "coordinates" in location:
        return location["coordinates"]
    return record.get("coordinates")


def _parse_entity(record: dict) -> NearbyEntity | None:
    """Map a single raw record onto a NearbyEntity, or None if it is unusable."""
    if not isinstance(record, dict) or record.get("id") is None:
        _LOGGER.warning("Nearby record without id, skipping: %s", record)
        return None
    pair = _record_coordinates(record)
    if pair is None:
        _LOGGER.warning("Nearby record %s has no coordinates, skipping", record.get("id"))
        return None
    try:
        coordinate = coordinate_from_lng_lat(pair)
    except (TypeError, ValueError) as e:
        _LOGGER.warning("Nearby record %s has invalid coordinates: %s", record.get("id"), e)
        return None
    return NearbyEntity(
        id=record["id"],
        display_name=record.get("nombre") or record.get("name") or "",
        coordinate=coordinate,
        last_name=record.get("apellido"),
        description=record.get("descripcion"),
        photo_url=record.get("fotoUrl") or record.get("foto"),
    )


def parse_nearby_entities(raw) -> list[NearbyEntity] | None:
    """
    Parse a nearby response body.

    Accepts either a bare list of records or an object with a ``data`` list.
    Returns None when the body has an unexpected shape.
    """
    if isinstance(raw, dict):
        raw = raw.get("data")
    if not isinstance(raw, list):
        _LOGGER.warning("Unexpected nearby response format: %s", raw)
        return None
    parsed = [_parse_entity(record) for record in raw]
    return [e for e in parsed if e is not None]


async def fetch_nearby(
    lat: float,
    lng: float,
    radius_km: float,
    base_url: str = API_BASE_URL,
    headers: dict | None = None,
    timeout: int = REQUEST_TIMEOUT,
) -> list[NearbyEntity] | None:
    """
    Fetch the entities within radius_km of (lat, lng).

    Returns the parsed list (possibly empty) on success and None on any
    failure. The request is attempted once; callers do not retry.

    Corresponding CURL command:
    curl -X 'GET' '<base>/trabajadores/cercanos?lat=<LAT>&lng=<LNG>&radiusKm=<KM>'
    """
    url = build_url(base_url, NEARBY_PATH)
    params = {"lat": lat, "lng": lng, "radiusKm": radius_km}
    try:
        raw_json = await make_request("GET", url, headers, params=params, timeout=timeout, max_attempts=1)
    except ApiResponseError as e:
        _LOGGER.warning("Nearby query failed: %s", e)
        return None
    except (asyncio.TimeoutError, TimeoutError):
        _LOGGER.warning("Timeout while querying nearby entities at (%s, %s)", lat, lng)
        return None
    except ValueError as e:
        _LOGGER.warning("Invalid nearby response at (%s, %s): %s", lat, lng, e)
        return None
    except Exception as e:  # noqa: BLE001
        _LOGGER.error(
            "Unexpected error while querying nearby entities at (%s, %s): %s: %s",
            lat, lng, type(e).__name__, e,
        )
        return None

    return parse_nearby_entities(raw_json)
