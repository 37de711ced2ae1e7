"""PostGIS geography helpers for disaster locations.

This module is the pure (no I/O) geospatial half of the persistence
layer. It converts GeoJSON points into the EWKT literals consumed by
``ST_GeogFromText`` on the write path, rebuilds points from
``ST_AsGeoJSON`` output on the read path, and generates the proximity
query used by ``/near`` searches.

Distances are geographic: ``ST_DWithin`` and ``ST_Distance`` on the
``geography`` type measure on the WGS 84 spheroid, and the in-memory
repository uses the haversine great-circle distance, so neither backend
uses planar math.

Example:
    Build the proximity query for a 100 km search around Los Angeles:
        >>> from app.services.geo import build_near_query
        >>> sql, params = build_near_query("id, type", 34.05, -118.25, 100)
        >>> params["meters"]
        100000.0
        >>> cursor.execute(sql, params)
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping

import structlog

from app.db import models as db_models

logger = structlog.get_logger(__name__)

SRID = 4326
EARTH_RADIUS_KM = 6371.0088
SENTINEL_POINT = db_models.GeoPoint((0.0, 0.0))


def is_valid_coordinate(lat: float, lng: float) -> bool:
    """Return True when both values are finite and within WGS 84 bounds."""
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0


def point_to_wkt(point: db_models.GeoPoint) -> str:
    """Serialize a point as EWKT for ``ST_GeogFromText``.

    Args:
        point: GeoJSON point with ``(longitude, latitude)`` coordinates.

    Returns:
        EWKT literal such as ``SRID=4326;POINT(-118.25 34.05)``.
    """
    return f"SRID={SRID};POINT({float(point.lng)!r} {float(point.lat)!r})"


def point_from_geojson(payload: object) -> db_models.GeoPoint:
    """Rebuild a point from ``ST_AsGeoJSON`` output.

    Accepts the GeoJSON text returned by PostGIS or an already decoded
    mapping. Anything that is not a point with two numeric coordinates is
    replaced by ``Point(0, 0)`` so that one malformed row does not fail a
    whole listing; the substitution is logged.

    Args:
        payload: GeoJSON text, bytes or mapping.

    Returns:
        The decoded point, or ``SENTINEL_POINT``.
    """
    data: object = payload
    if isinstance(data, bytes | bytearray | memoryview):
        data = bytes(data).decode("utf-8", errors="replace")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError:
            data = None

    if isinstance(data, Mapping) and data.get("type") == "Point":
        coordinates = data.get("coordinates")
        if (
            isinstance(coordinates, list | tuple)
            and len(coordinates) == 2
            and all(
                isinstance(c, int | float) and not isinstance(c, bool)
                for c in coordinates
            )
        ):
            return db_models.GeoPoint((float(coordinates[0]), float(coordinates[1])))

    logger.warning("malformed geometry replaced by sentinel", payload=repr(payload))
    return SENTINEL_POINT


def build_near_query(
    columns: str,
    lat: float,
    lng: float,
    distance_km: float,
) -> tuple[str, dict[str, object]]:
    """Return a proximity query and its parameters.

    Selects ``columns`` plus ``distance_km`` for every row whose location
    lies within ``distance_km`` kilometres of the query point, nearest
    first. ``ST_DWithin`` on geography can use the GiST index on
    ``location``.

    Args:
        columns: Select list for the disasters table (trusted, not user input).
        lat: Latitude of the query point.
        lng: Longitude of the query point.
        distance_km: Search radius in kilometres.

    Returns:
        Tuple of SQL text with named placeholders and the parameter mapping.
    """
    sql = f"""
SELECT {columns},
       ST_Distance(location, ST_GeogFromText(%(point)s)) / 1000.0 AS distance_km
FROM disasters
WHERE ST_DWithin(location, ST_GeogFromText(%(point)s), %(meters)s)
ORDER BY distance_km ASC
""".strip()  # noqa: S608
    params: dict[str, object] = {
        "point": point_to_wkt(db_models.GeoPoint((float(lng), float(lat)))),
        "meters": float(distance_km) * 1000.0,
    }
    return sql, params


def haversine_km(a: db_models.GeoPoint, b: db_models.GeoPoint) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))
