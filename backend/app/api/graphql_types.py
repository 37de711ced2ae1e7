"""Strawberry types for the disasters GraphQL schema.

Output types are built from domain records through
``serialization.normalize`` so GraphQL and REST always return the same
values. Input types only describe the GraphQL shape; their ``to_payload``
methods turn them back into plain mappings that go through the same
validation as REST bodies.
"""

from __future__ import annotations

import enum
from typing import Any

import strawberry

from app.db import models as db_models
from app.services import serialization


@strawberry.enum
class DisasterStatus(enum.Enum):
    active = "active"
    contained = "contained"
    resolved = "resolved"


@strawberry.type
class Location:
    type: str
    coordinates: list[float]


@strawberry.type
class Disaster:
    id: strawberry.ID
    type: str
    location: Location
    date: str
    description: str | None
    status: DisasterStatus
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_domain(cls, disaster: db_models.Disaster) -> Disaster:
        """Build the GraphQL value for a stored record."""
        fields = serialization.normalize(disaster)
        return cls(
            id=strawberry.ID(fields["id"]),
            type=fields["type"],
            location=Location(
                type=fields["location"]["type"],
                coordinates=list(fields["location"]["coordinates"]),
            ),
            date=fields["date"],
            description=fields["description"],
            status=DisasterStatus(fields["status"]),
            created_at=fields["created_at"],
            updated_at=fields["updated_at"],
        )


@strawberry.type
class DisasterPage:
    data: list[Disaster]
    page: int
    limit: int
    total: int
    total_pages: int


@strawberry.type
class BulkUpdateResult:
    matched_count: int
    modified_count: int

    @classmethod
    def from_domain(cls, result: db_models.BulkUpdateResult) -> BulkUpdateResult:
        return cls(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
        )


@strawberry.input
class LocationInput:
    type: str
    coordinates: list[float]

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "coordinates": list(self.coordinates)}


def _supplied(values: dict[str, Any]) -> dict[str, Any]:
    """Drop unset and null fields, which count as absent."""
    return {
        key: value
        for key, value in values.items()
        if value is not None and value is not strawberry.UNSET
    }


@strawberry.input
class DisasterInput:
    type: str
    location: LocationInput
    date: str
    status: DisasterStatus
    description: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return _supplied(
            {
                "type": self.type,
                "location": self.location.to_payload(),
                "date": self.date,
                "status": self.status.value,
                "description": self.description,
            }
        )


@strawberry.input
class DisasterPatchInput:
    type: str | None = strawberry.UNSET
    location: LocationInput | None = strawberry.UNSET
    date: str | None = strawberry.UNSET
    status: DisasterStatus | None = strawberry.UNSET
    description: str | None = strawberry.UNSET

    def to_payload(self) -> dict[str, Any]:
        return _patch_payload(self)


@strawberry.input
class DisasterBulkUpdateInput:
    id: strawberry.ID
    type: str | None = strawberry.UNSET
    location: LocationInput | None = strawberry.UNSET
    date: str | None = strawberry.UNSET
    status: DisasterStatus | None = strawberry.UNSET
    description: str | None = strawberry.UNSET

    def to_payload(self) -> dict[str, Any]:
        return {"id": str(self.id), **_patch_payload(self)}


def _patch_payload(
    item: DisasterPatchInput | DisasterBulkUpdateInput,
) -> dict[str, Any]:
    location = item.location
    status = item.status
    return _supplied(
        {
            "type": item.type,
            "location": location.to_payload()
            if isinstance(location, LocationInput)
            else None,
            "date": item.date,
            "status": status.value if isinstance(status, DisasterStatus) else None,
            "description": item.description,
        }
    )
