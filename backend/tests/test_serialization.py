"""Tests for the JSON, GraphQL and protobuf representations of a record."""

from __future__ import annotations

import datetime
import json

import pytest

from app.api import graphql_types
from app.db import models as db_models
from app.services import disaster_proto, serialization

CREATED = datetime.datetime(2025, 1, 2, 3, 4, 5, tzinfo=datetime.UTC)


def _disaster(**overrides: object) -> db_models.Disaster:
    fields: dict[str, object] = {
        "id": "6f1c1b9e-5d55-4c1b-9d0e-3d3f1f1d2a10",
        "type": "wildfire",
        "location": db_models.GeoPoint((-118.25, 34.05)),
        "date": "2025-01-01",
        "status": "active",
        "description": "Griffith Park",
        "created_at": CREATED,
        "updated_at": CREATED,
    }
    fields.update(overrides)
    return db_models.Disaster(**fields)  # type: ignore[arg-type]


def test_to_dto() -> None:
    assert serialization.to_dto(_disaster()) == {
        "id": "6f1c1b9e-5d55-4c1b-9d0e-3d3f1f1d2a10",
        "type": "wildfire",
        "location": {"type": "Point", "coordinates": [-118.25, 34.05]},
        "date": "2025-01-01",
        "description": "Griffith Park",
        "status": "active",
        "createdAt": "2025-01-02T03:04:05+00:00",
        "updatedAt": "2025-01-02T03:04:05+00:00",
    }


def test_normalize_falls_back_to_active_status() -> None:
    """Records without a status are reported as active everywhere."""
    disaster = _disaster(status=None, date="2025-01-01T22:00:00Z")
    fields = serialization.normalize(disaster)
    assert fields["status"] == "active"
    assert fields["date"] == "2025-01-01"
    assert graphql_types.Disaster.from_domain(disaster).status is (
        graphql_types.DisasterStatus.active
    )
    assert serialization.to_message(disaster).status == "active"


def test_to_message_round_trip() -> None:
    message = serialization.to_message(_disaster(description=None))
    decoded = disaster_proto.Disaster.FromString(message.SerializeToString())
    assert decoded.id == "6f1c1b9e-5d55-4c1b-9d0e-3d3f1f1d2a10"
    assert decoded.description == ""
    assert decoded.created_at == "2025-01-02T03:04:05+00:00"
    assert json.loads(decoded.location) == {
        "type": "Point",
        "coordinates": [-118.25, 34.05],
    }


def test_to_message_list() -> None:
    message = serialization.to_message_list(
        [_disaster(), _disaster(id="other", type="flood")]
    )
    decoded = disaster_proto.DisasterList.FromString(message.SerializeToString())
    assert [d.type for d in decoded.disasters] == ["wildfire", "flood"]


def test_empty_message_serializes_to_no_bytes() -> None:
    assert serialization.empty_message().SerializeToString() == b""


def test_graphql_value_matches_dto() -> None:
    value = graphql_types.Disaster.from_domain(_disaster())
    dto = serialization.to_dto(_disaster())
    assert value.id == dto["id"]
    assert value.location.coordinates == dto["location"]["coordinates"]
    assert value.created_at == dto["createdAt"]


@pytest.mark.parametrize(
    ("accept", "expected"),
    [
        ("application/x-protobuf", True),
        ("application/x-protobuf; q=0.9, application/json", True),
        ("Application/X-Protobuf", True),
        ("application/json, application/x-protobuf", False),
        ("*/*", False),
        ("", False),
        (None, False),
    ],
)
def test_wants_protobuf(accept: str | None, expected: bool) -> None:
    assert serialization.wants_protobuf(accept) is expected
