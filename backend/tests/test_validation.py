"""Tests for payload and query validation in app.services.validation.

The messages asserted here are part of the public API: REST error bodies
and GraphQL ``extensions.details`` carry them verbatim.
"""

from __future__ import annotations

import datetime
import uuid
from typing import Any

import pytest

from app.db import models as db_models
from app.services import validation


def _payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": "wildfire",
        "location": {"type": "Point", "coordinates": [-118.25, 34.05]},
        "date": "2025-01-01",
        "status": "active",
    }
    payload.update(overrides)
    return payload


def test_validate_create_normalizes() -> None:
    result = validation.validate_create(_payload(type="  wildfire ", description="x"))
    assert result.ok
    assert result.value == db_models.DisasterInput(
        type="wildfire",
        location=db_models.GeoPoint((-118.25, 34.05)),
        date=datetime.date(2025, 1, 1),
        status="active",
        description="x",
    )


def test_validate_create_empty_object_lists_every_required_field() -> None:
    result = validation.validate_create({})
    assert not result.ok
    assert result.errors == [
        "type (string) is required",
        "location (object) is required",
        "date (ISO string) is required",
        "status (string) is required",
    ]


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"type": None}, "type (string) is required"),
        ({"type": 42}, "type must be a string"),
        ({"type": "   "}, "type (string) must not be empty"),
        ({"location": "here"}, "location must be an object"),
        (
            {"location": {"type": "Polygon", "coordinates": [0, 0]}},
            'location.type must be "Point"',
        ),
        (
            {"location": {"type": "Point", "coordinates": [1.0]}},
            "location.coordinates must be [longitude, latitude]",
        ),
        (
            {"location": {"type": "Point"}},
            "location.coordinates must be [longitude, latitude]",
        ),
        (
            {"location": {"type": "Point", "coordinates": [181, 0]}},
            "location.coordinates[0] (longitude) must be a finite number "
            "between -180 and 180",
        ),
        (
            {"location": {"type": "Point", "coordinates": [0, -90.5]}},
            "location.coordinates[1] (latitude) must be a finite number "
            "between -90 and 90",
        ),
        (
            {"location": {"type": "Point", "coordinates": [0, 0], "crs": "x"}},
            "location.crs is not allowed",
        ),
        ({"date": "yesterday"}, "date (ISO string) is required"),
        ({"date": None}, "date (ISO string) is required"),
        ({"status": None}, "status (string) is required"),
        ({"status": "ongoing"}, "status must be one of [active, contained, resolved]"),
        ({"description": 7}, "description must be a string"),
        ({"severity": "high"}, "severity is not allowed"),
    ],
)
def test_validate_create_messages(overrides: dict[str, Any], message: str) -> None:
    result = validation.validate_create(_payload(**overrides))
    assert result.errors == [message]


def test_validate_create_rejects_non_object() -> None:
    assert validation.validate_create(None).errors == ["Request body must be an object"]
    assert validation.validate_create([1, 2]).errors == [
        "Request body must be an object"
    ]


_LONGITUDE_MESSAGE = (
    "location.coordinates[0] (longitude) must be a finite number "
    "between -180 and 180"
)
_LATITUDE_MESSAGE = (
    "location.coordinates[1] (latitude) must be a finite number "
    "between -90 and 90"
)


@pytest.mark.parametrize(
    ("coordinates", "message"),
    [
        (["NaN", 0], _LONGITUDE_MESSAGE),
        ([float("nan"), 0], _LONGITUDE_MESSAGE),
        ([float("-inf"), 0], _LONGITUDE_MESSAGE),
        ([0, float("inf")], _LATITUDE_MESSAGE),
        ([0, "Infinity"], _LATITUDE_MESSAGE),
    ],
)
def test_non_finite_coordinates_are_rejected(
    coordinates: list[object], message: str
) -> None:
    location = {"type": "Point", "coordinates": coordinates}
    assert validation.validate_create(_payload(location=location)).errors == [
        message
    ]
    assert validation.validate_update({"location": location}).errors == [message]


def test_oversized_epoch_date_is_a_validation_error() -> None:
    result = validation.validate_create(_payload(date=10**400))
    assert result.errors == ["date (ISO string) is required"]


def test_validate_create_accepts_epoch_and_datetime_dates() -> None:
    epoch = validation.validate_create(_payload(date="1735689600000"))
    assert epoch.value is not None
    assert epoch.value.date == datetime.date(2025, 1, 1)
    stamped = validation.validate_create(_payload(date="2025-01-01T12:00:00Z"))
    assert stamped.value is not None
    assert stamped.value.date == datetime.date(2025, 1, 1)


def test_validate_full_update_follows_create_rules() -> None:
    assert validation.validate_full_update(_payload()).ok
    assert validation.validate_full_update({"type": "flood"}).errors == [
        "location (object) is required",
        "date (ISO string) is required",
        "status (string) is required",
    ]


def test_validate_update_partial() -> None:
    result = validation.validate_update({"status": "resolved"})
    assert result.ok
    assert result.value == db_models.DisasterPatch(status="resolved")


def test_validate_update_requires_a_field() -> None:
    assert validation.validate_update({}).errors == [
        "at least one field to update is required"
    ]
    assert validation.validate_update({"description": None}).errors == [
        "at least one field to update is required"
    ]


def test_validate_update_checks_present_fields() -> None:
    result = validation.validate_update({"status": "unknown", "extra": 1})
    assert set(result.errors) == {
        "status must be one of [active, contained, resolved]",
        "extra is not allowed",
    }


def test_validate_bulk_create() -> None:
    result = validation.validate_bulk_create([_payload(), _payload(type="flood")])
    assert result.ok
    assert [item.type for item in result.value or []] == ["wildfire", "flood"]


@pytest.mark.parametrize("raw", [None, {}, [], "items"])
def test_validate_bulk_create_requires_non_empty_array(raw: object) -> None:
    assert validation.validate_bulk_create(raw).errors == [
        "Request body must be a non-empty array"
    ]


def test_validate_bulk_create_limits_size() -> None:
    result = validation.validate_bulk_create([_payload()] * 3, max_items=2)
    assert result.errors == ["Request body must contain at most 2 items"]
    assert validation.validate_bulk_create([_payload()] * 100).ok


def test_validate_bulk_create_prefixes_item_index() -> None:
    """One bad item rejects the batch and names its position."""
    result = validation.validate_bulk_create([_payload(), {"type": ""}, "x"])
    assert not result.ok
    assert "[1].type (string) must not be empty" in result.errors
    assert "[1].location (object) is required" in result.errors
    assert "[2] must be an object" in result.errors
    assert result.value is None


def test_validate_bulk_update() -> None:
    key = str(uuid.uuid4())
    result = validation.validate_bulk_update(
        [{"id": key, "status": "contained"}, {"_id": key.upper(), "type": "flood"}]
    )
    assert result.ok
    assert result.value == [
        db_models.DisasterUpdate(key, db_models.DisasterPatch(status="contained")),
        db_models.DisasterUpdate(key, db_models.DisasterPatch(type="flood")),
    ]


def test_validate_bulk_update_errors() -> None:
    result = validation.validate_bulk_update(
        [
            {"id": "not-a-uuid", "status": "active"},
            {"id": str(uuid.uuid4())},
            {"status": "active"},
        ]
    )
    assert result.errors == [
        "[0].id must be a valid UUID",
        "[1] at least one field to update is required",
        "[2].id (string) is required",
    ]


def test_validate_near_query_coerces_strings() -> None:
    result = validation.validate_near_query(
        {"lat": "34.05", "lng": "-118.25", "distance": "100"}
    )
    assert result.value == validation.NearQuery(lat=34.05, lng=-118.25, distance=100.0)


@pytest.mark.parametrize(
    ("raw", "errors"),
    [
        (
            {},
            [
                "lat (number) is required as query parameter",
                "lng (number) is required as query parameter",
                "distance (number, km) is required as query parameter",
            ],
        ),
        (
            {"lat": "abc", "lng": "0", "distance": "1"},
            ["lat (number) is required as query parameter"],
        ),
        (
            {"lat": "NaN", "lng": "0", "distance": "1"},
            ["lat (number) is required as query parameter"],
        ),
        (
            {"lat": "0", "lng": "0", "distance": "inf"},
            ["distance (number, km) is required as query parameter"],
        ),
        (
            {"lat": "91", "lng": "0", "distance": "1"},
            ["lat must be between -90 and 90"],
        ),
        (
            {"lat": "0", "lng": "-181", "distance": "1"},
            ["lng must be between -180 and 180"],
        ),
        (
            {"lat": "0", "lng": "0", "distance": "-1"},
            ["distance must be greater than or equal to 0"],
        ),
    ],
)
def test_validate_near_query_errors(raw: dict[str, object], errors: list[str]) -> None:
    assert validation.validate_near_query(raw).errors == errors


def test_validate_list_query_defaults_and_clamping() -> None:
    result = validation.validate_list_query(page="abc", limit="-5")
    assert result.value is not None
    assert (result.value.page, result.value.limit, result.value.skip) == (1, 20, 0)

    capped = validation.validate_list_query(page="3", limit="500")
    assert capped.value is not None
    assert (capped.value.page, capped.value.limit, capped.value.skip) == (3, 100, 200)


def test_validate_list_query_filters() -> None:
    result = validation.validate_list_query(
        type="flood", status="active", date_from="2025-01-01", date_to=" "
    )
    assert result.value is not None
    assert result.value.filter == db_models.DisasterFilter(
        type="flood",
        status="active",
        date_from=datetime.date(2025, 1, 1),
        date_to=None,
    )


def test_validate_list_query_rejects_bad_dates() -> None:
    result = validation.validate_list_query(date_from="soon", date_to="later")
    assert result.errors == [
        "dateFrom (ISO string) must be a valid date",
        "dateTo (ISO string) must be a valid date",
    ]


def test_validate_id() -> None:
    key = str(uuid.uuid4())
    assert validation.validate_id(key).value == key
    assert validation.validate_id("123").errors == ["Invalid ID format"]
    assert validation.validate_id(None).errors == ["Invalid ID format"]
