"""Data models for disaster records.

This module defines the core data structures used throughout the
application: the ``Disaster`` entity as it is read back from the store,
the normalized write shapes produced by the validation layer, and the
filter used by listing and counting.

Locations are always GeoJSON-like points with coordinates ordered
``(longitude, latitude)`` in WGS 84 (EPSG:4326). Event dates are kept as
``YYYY-MM-DD`` strings on the read side.

Example:
    Creating the normalized input for a new record:
        >>> import datetime
        >>> from app.db.models import DisasterInput, GeoPoint
        >>> wildfire = DisasterInput(
        ...     type="wildfire",
        ...     location=GeoPoint((-118.25, 34.05)),
        ...     date=datetime.date(2025, 1, 1),
        ...     status="active",
        ... )
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Any, Literal

DisasterStatus = Literal["active", "contained", "resolved"]

STATUSES: tuple[str, ...] = ("active", "contained", "resolved")
DEFAULT_STATUS: DisasterStatus = "active"


@dataclasses.dataclass(frozen=True)
class GeoPoint:
    """GeoJSON point with ``(longitude, latitude)`` coordinates."""

    coordinates: tuple[float, float]
    type: Literal["Point"] = "Point"

    @property
    def lng(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]

    def to_geojson(self) -> dict[str, Any]:
        """Return the point as a plain GeoJSON mapping."""
        return {"type": self.type, "coordinates": [self.lng, self.lat]}


@dataclasses.dataclass
class Disaster:
    """A disaster record as stored and returned by the persistence layer.

    Attributes:
        id: Store-assigned UUID string.
        type: Free-text classification (e.g. "wildfire", "flood").
        location: Event location as a GeoJSON point.
        date: Event date formatted as ``YYYY-MM-DD``.
        status: One of ``active``, ``contained`` or ``resolved``. May be
            None only for raw records that predate the column default;
            serializers fall back to ``active``.
        description: Optional free text.
        created_at: Timestamp assigned on insert.
        updated_at: Timestamp refreshed on every successful mutation.
    """

    id: str
    type: str
    location: GeoPoint
    date: str
    status: str | None
    description: str | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None


@dataclasses.dataclass
class DisasterInput:
    """Normalized payload for creating (or fully replacing) a record."""

    type: str
    location: GeoPoint
    date: datetime.date
    status: DisasterStatus | None = None
    description: str | None = None


@dataclasses.dataclass
class DisasterPatch:
    """Partial update; ``None`` means the field was not supplied."""

    type: str | None = None
    location: GeoPoint | None = None
    date: datetime.date | None = None
    status: DisasterStatus | None = None
    description: str | None = None

    def changes(self) -> dict[str, Any]:
        """Return only the supplied fields, keyed by column name."""
        return {
            field.name: getattr(self, field.name)
            for field in dataclasses.fields(self)
            if getattr(self, field.name) is not None
        }

    @classmethod
    def from_input(cls, data: DisasterInput) -> DisasterPatch:
        """Build a patch that overwrites every field of ``data``."""
        return cls(
            type=data.type,
            location=data.location,
            date=data.date,
            status=data.status,
            description=data.description,
        )


@dataclasses.dataclass
class DisasterUpdate:
    """One item of a bulk update request."""

    id: str
    patch: DisasterPatch


@dataclasses.dataclass
class DisasterFilter:
    """Exact-match and inclusive date-range filter for list and count."""

    type: str | None = None
    status: str | None = None
    date_from: datetime.date | None = None
    date_to: datetime.date | None = None


@dataclasses.dataclass
class BulkUpdateResult:
    """Outcome of a bulk update.

    Attributes:
        matched_count: Number of update requests attempted.
        modified_count: Number that found and changed an existing record.
    """

    matched_count: int = 0
    modified_count: int = 0
