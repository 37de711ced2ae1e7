"""Schema validation for disaster payloads and query parameters.

Every entry point takes raw, untrusted input (a decoded JSON body, query
string values or GraphQL input) and returns a ``ValidationResult``: either
a normalized value ready for the persistence layer or a list of
field-qualified, human-readable error messages. Nothing here raises for
malformed input.

The schemas are pydantic models; pydantic's error records are rewritten
into a fixed set of messages (``type (string) is required``,
``date (ISO string) is required``, ...) that API clients match on, so the
wording below is part of the public contract.

Example:
    Validate a create payload:
        >>> from app.services import validation
        >>> result = validation.validate_create({"type": "flood"})
        >>> result.ok
        False
        >>> result.errors
        ['location (object) is required', 'date (ISO string) is required',
         'status (string) is required']
"""

from __future__ import annotations

import dataclasses
import datetime
from collections.abc import Mapping
from typing import Annotated, Any, Generic, Literal, TypeVar

import pydantic

from app.db import database
from app.db import models as db_models
from app.utils import dates

T = TypeVar("T")
M = TypeVar("M", bound=pydantic.BaseModel)

STATUS_CHOICES = ", ".join(db_models.STATUSES)

NonEmptyStr = Annotated[
    str, pydantic.StringConstraints(strip_whitespace=True, min_length=1)
]
EventDate = Annotated[datetime.date, pydantic.BeforeValidator(dates.parse_event_date)]
Status = Literal["active", "contained", "resolved"]
Longitude = Annotated[float, pydantic.Field(ge=-180, le=180, allow_inf_nan=False)]
Latitude = Annotated[float, pydantic.Field(ge=-90, le=90, allow_inf_nan=False)]

_PATCH_FIELDS = ("type", "location", "date", "status", "description")

_REQUIRED_MESSAGES = {
    "type": "type (string) is required",
    "location": "location (object) is required",
    "date": "date (ISO string) is required",
    "status": "status (string) is required",
    "id": "id (string) is required",
}

_QUERY_MESSAGES = {
    "lat": "lat (number) is required as query parameter",
    "lng": "lng (number) is required as query parameter",
    "distance": "distance (number, km) is required as query parameter",
}

_RANGE_MESSAGES = {
    "lat": "lat must be between -90 and 90",
    "lng": "lng must be between -180 and 180",
    "distance": "distance must be greater than or equal to 0",
}

_NUMBER_ERRORS = frozenset(
    {"missing", "float_parsing", "float_type", "finite_number"}
)


@dataclasses.dataclass
class ValidationResult(Generic[T]):
    """Outcome of a validation call.

    Attributes:
        value: Normalized value, set only when validation succeeded.
        errors: Field-qualified messages, empty on success.
    """

    value: T | None = None
    errors: list[str] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclasses.dataclass
class NearQuery:
    lat: float
    lng: float
    distance: float


@dataclasses.dataclass
class ListQuery:
    page: int
    limit: int
    skip: int
    filter: db_models.DisasterFilter


class _Point(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="forbid")

    type: Literal["Point"]
    coordinates: tuple[Longitude, Latitude]

    def to_geo_point(self) -> db_models.GeoPoint:
        return db_models.GeoPoint((self.coordinates[0], self.coordinates[1]))


class _DisasterCreate(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="forbid")

    type: NonEmptyStr
    location: _Point
    date: EventDate
    status: Status
    description: str | None = None

    def to_input(self) -> db_models.DisasterInput:
        return db_models.DisasterInput(
            type=self.type,
            location=self.location.to_geo_point(),
            date=self.date,
            status=self.status,
            description=self.description,
        )


class _DisasterPatch(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="forbid")

    type: NonEmptyStr | None = None
    location: _Point | None = None
    date: EventDate | None = None
    status: Status | None = None
    description: str | None = None

    @pydantic.model_validator(mode="after")
    def _require_change(self) -> _DisasterPatch:
        if all(getattr(self, name) is None for name in _PATCH_FIELDS):
            raise ValueError("at least one field to update is required")
        return self

    def to_patch(self) -> db_models.DisasterPatch:
        return db_models.DisasterPatch(
            type=self.type,
            location=self.location.to_geo_point() if self.location else None,
            date=self.date,
            status=self.status,
            description=self.description,
        )


class _BulkUpdateItem(_DisasterPatch):
    id: str = pydantic.Field(validation_alias=pydantic.AliasChoices("id", "_id"))

    @pydantic.field_validator("id")
    @classmethod
    def _check_uuid(cls, value: str) -> str:
        key = database.parse_uuid(value)
        if key is None:
            raise ValueError("must be a valid UUID")
        return key


class _NearQuery(pydantic.BaseModel):
    lat: Latitude
    lng: Longitude
    distance: Annotated[float, pydantic.Field(ge=0, allow_inf_nan=False)]


def _format_loc(loc: tuple[int | str, ...]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else part
    return path


def _location_message(loc: tuple[int | str, ...], kind: str) -> str:
    if len(loc) == 1:
        return "location must be an object"
    if loc[1] == "type":
        return 'location.type must be "Point"'
    if loc[1] == "coordinates":
        if len(loc) == 2 or kind == "missing":
            return "location.coordinates must be [longitude, latitude]"
        if loc[2] == 0:
            return (
                "location.coordinates[0] (longitude) must be a finite number "
                "between -180 and 180"
            )
        return (
            "location.coordinates[1] (latitude) must be a finite number "
            "between -90 and 90"
        )
    return f"{_format_loc(loc)} is not allowed"


def _field_message(error: Mapping[str, Any]) -> str:
    """Map one pydantic error record onto the public message wording."""
    loc = tuple(error["loc"])
    kind = error["type"]
    if not loc:
        if kind == "value_error":
            ctx = error.get("ctx") or {}
            return str(ctx.get("error") or error["msg"])
        return "must be an object"
    if kind == "extra_forbidden":
        return f"{_format_loc(loc)} is not allowed"

    head = str(loc[0])
    if head == "date":
        return _REQUIRED_MESSAGES["date"]
    if len(loc) == 1 and head in _REQUIRED_MESSAGES and (
        kind == "missing" or error.get("input") is None
    ):
        return _REQUIRED_MESSAGES[head]
    if head == "location":
        return _location_message(loc, kind)
    if head == "type":
        if kind == "string_too_short":
            return "type (string) must not be empty"
        return "type must be a string"
    if head == "status":
        return f"status must be one of [{STATUS_CHOICES}]"
    if head == "description":
        return "description must be a string"
    if head == "id":
        return "id must be a valid UUID"
    return f"{_format_loc(loc)}: {error['msg']}"


def _messages(exc: pydantic.ValidationError, prefix: str = "") -> list[str]:
    messages: list[str] = []
    for error in exc.errors():
        text = _field_message(error)
        if not prefix:
            message = text
        elif not error["loc"]:
            message = f"{prefix} {text}"
        else:
            message = f"{prefix}.{text}"
        if message not in messages:
            messages.append(message)
    return messages


def _run(
    model: type[M],
    raw: object,
    prefix: str = "",
) -> tuple[M | None, list[str]]:
    try:
        return model.model_validate(raw), []
    except pydantic.ValidationError as exc:
        messages = _messages(exc, prefix)
        if not prefix and any(
            not error["loc"] and error["type"] != "value_error"
            for error in exc.errors()
        ):
            messages = ["Request body must be an object"]
        return None, messages


def _check_array(raw: object, max_items: int) -> list[str]:
    if not isinstance(raw, list) or not raw:
        return ["Request body must be a non-empty array"]
    if len(raw) > max_items:
        return [f"Request body must contain at most {max_items} items"]
    return []


def validate_create(raw: object) -> ValidationResult[db_models.DisasterInput]:
    """Validate a create payload.

    Requires ``type``, ``location``, ``date`` and ``status``;
    ``description`` is optional. Unknown keys are rejected.

    Args:
        raw: Decoded JSON body or GraphQL input mapping.

    Returns:
        Result holding a DisasterInput, or the error messages.
    """
    model, errors = _run(_DisasterCreate, raw)
    if model is None:
        return ValidationResult(errors=errors)
    return ValidationResult(value=model.to_input())


def validate_full_update(raw: object) -> ValidationResult[db_models.DisasterInput]:
    """Validate a full replacement payload (same rules as create)."""
    return validate_create(raw)


def validate_update(raw: object) -> ValidationResult[db_models.DisasterPatch]:
    """Validate a partial update.

    All fields are optional but at least one must be present (null values
    count as absent). Present fields follow the create rules.
    """
    model, errors = _run(_DisasterPatch, raw)
    if model is None:
        return ValidationResult(errors=errors)
    return ValidationResult(value=model.to_patch())


def validate_bulk_create(
    raw: object,
    max_items: int = 100,
) -> ValidationResult[list[db_models.DisasterInput]]:
    """Validate a bulk insert body.

    The body must be an array of 1..max_items create payloads. A single
    invalid item rejects the whole request; messages are prefixed with the
    item index, e.g. ``[2].type (string) is required``.
    """
    errors = _check_array(raw, max_items)
    if errors:
        return ValidationResult(errors=errors)

    items: list[db_models.DisasterInput] = []
    for index, item in enumerate(raw):  # type: ignore[arg-type]
        model, item_errors = _run(_DisasterCreate, item, prefix=f"[{index}]")
        errors.extend(item_errors)
        if model is not None:
            items.append(model.to_input())
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(value=items)


def validate_bulk_update(
    raw: object,
    max_items: int = 100,
) -> ValidationResult[list[db_models.DisasterUpdate]]:
    """Validate a bulk update body.

    Each item needs a UUID ``id`` (``_id`` is accepted as an alias) and at
    least one other field. A malformed id or field fails the entire
    request. Ids that are well-formed but unknown pass validation.
    """
    errors = _check_array(raw, max_items)
    if errors:
        return ValidationResult(errors=errors)

    updates: list[db_models.DisasterUpdate] = []
    for index, item in enumerate(raw):  # type: ignore[arg-type]
        model, item_errors = _run(_BulkUpdateItem, item, prefix=f"[{index}]")
        errors.extend(item_errors)
        if model is not None:
            updates.append(
                db_models.DisasterUpdate(id=model.id, patch=model.to_patch())
            )
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(value=updates)


def validate_near_query(raw: Mapping[str, object]) -> ValidationResult[NearQuery]:
    """Validate ``lat``/``lng``/``distance`` proximity parameters.

    Values are coerced from query-string text. Non-numeric, NaN and
    infinite values are failures, never silently defaulted.
    """
    try:
        model = _NearQuery.model_validate(dict(raw))
    except pydantic.ValidationError as exc:
        messages: list[str] = []
        for error in exc.errors():
            name = str(error["loc"][0])
            if error["type"] in _NUMBER_ERRORS:
                message = _QUERY_MESSAGES[name]
            else:
                message = _RANGE_MESSAGES[name]
            if message not in messages:
                messages.append(message)
        return ValidationResult(errors=messages)
    return ValidationResult(
        value=NearQuery(lat=model.lat, lng=model.lng, distance=model.distance)
    )


def _lenient_positive_int(value: object, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    return number if number > 0 else default


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def validate_list_query(
    page: object = None,
    limit: object = None,
    type: object = None,  # noqa: A002
    status: object = None,
    date_from: object = None,
    date_to: object = None,
) -> ValidationResult[ListQuery]:
    """Normalize pagination and filter parameters for listing.

    ``page`` and ``limit`` are lenient: unparseable or non-positive values
    fall back to 1 and 20, and ``limit`` is capped at 100. ``dateFrom``
    and ``dateTo`` must parse as dates when given.
    """
    page_number = _lenient_positive_int(page, 1)
    page_size = database.clamp_limit(
        _lenient_positive_int(limit, database.DEFAULT_LIMIT)
    )

    errors: list[str] = []
    bounds: dict[str, datetime.date | None] = {}
    for label, value in (("dateFrom", date_from), ("dateTo", date_to)):
        text = _optional_text(value)
        if text is None:
            bounds[label] = None
            continue
        try:
            bounds[label] = dates.parse_event_date(text)
        except ValueError:
            errors.append(f"{label} (ISO string) must be a valid date")
    if errors:
        return ValidationResult(errors=errors)

    return ValidationResult(
        value=ListQuery(
            page=page_number,
            limit=page_size,
            skip=(page_number - 1) * page_size,
            filter=db_models.DisasterFilter(
                type=_optional_text(type),
                status=_optional_text(status),
                date_from=bounds["dateFrom"],
                date_to=bounds["dateTo"],
            ),
        )
    )


def validate_id(raw: object) -> ValidationResult[str]:
    """Check that an identifier is a well-formed UUID."""
    key = database.parse_uuid(raw)
    if key is None:
        return ValidationResult(errors=["Invalid ID format"])
    return ValidationResult(value=key)
