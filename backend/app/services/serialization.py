"""Wire representations of disaster records.

A ``Disaster`` leaves the service in one of three shapes: a REST JSON DTO,
a GraphQL object (see ``app.api.graphql_types``) or a Protocol Buffers
message. All three are derived from ``normalize`` so they always agree on
field values, the ``YYYY-MM-DD`` date format and the ``active`` fallback
for records without a status.

In the binary form the location is carried as a GeoJSON string inside
``Disaster.location`` rather than as a nested message.

Example:
    Pick a representation from the Accept header:
        >>> from app.services import serialization
        >>> serialization.wants_protobuf("application/x-protobuf, */*")
        True
        >>> serialization.wants_protobuf("application/json, application/x-protobuf")
        False
"""

from __future__ import annotations

import datetime
import json
from collections.abc import Iterable
from typing import Any

from app.db import models as db_models
from app.services import disaster_proto
from app.utils import dates


def _timestamp(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    return str(value)


def normalize(disaster: db_models.Disaster) -> dict[str, Any]:
    """Return the canonical field values shared by every representation."""
    return {
        "id": str(disaster.id),
        "type": disaster.type,
        "location": disaster.location.to_geojson(),
        "date": dates.format_event_date(disaster.date),
        "description": disaster.description,
        "status": disaster.status or db_models.DEFAULT_STATUS,
        "created_at": _timestamp(disaster.created_at),
        "updated_at": _timestamp(disaster.updated_at),
    }


def to_dto(disaster: db_models.Disaster) -> dict[str, Any]:
    """Build the REST JSON body for one record."""
    fields = normalize(disaster)
    return {
        "id": fields["id"],
        "type": fields["type"],
        "location": fields["location"],
        "date": fields["date"],
        "description": fields["description"],
        "status": fields["status"],
        "createdAt": fields["created_at"],
        "updatedAt": fields["updated_at"],
    }


def to_message(disaster: db_models.Disaster) -> Any:
    """Build a ``disasters.Disaster`` protobuf message.

    Absent optional values become empty strings, the proto3 default.
    """
    fields = normalize(disaster)
    fields["location"] = json.dumps(fields["location"], separators=(",", ":"))
    return disaster_proto.Disaster(
        **{name: fields[name] or "" for name in disaster_proto.DISASTER_FIELDS}
    )


def to_message_list(disasters: Iterable[db_models.Disaster]) -> Any:
    """Build a ``disasters.DisasterList`` protobuf message."""
    message = disaster_proto.DisasterList()
    message.disasters.extend(to_message(d) for d in disasters)
    return message


def empty_message() -> Any:
    """Return the ``disasters.Empty`` sentinel used when there is no body."""
    return disaster_proto.Empty()


def wants_protobuf(accept: str | None) -> bool:
    """Return True only if the first Accept media range is protobuf.

    Quality values and later preferences are ignored; any other
    or absent first preference selects JSON.
    """
    if not accept:
        return False
    first = accept.split(",", 1)[0]
    media_type = first.split(";", 1)[0].strip().lower()
    return media_type == disaster_proto.MEDIA_TYPE
