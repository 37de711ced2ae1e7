"""REST endpoints for disaster records.

This module exposes create, read, update and delete operations plus
proximity search and bulk writes under ``/api/v1/disasters``. Every body
and query string goes through ``app.services.validation`` before reaching
the repository, and failures are raised as ``app.core.errors`` exceptions
that the application-level handlers render as
``{"error", "details", "code", "requestId"}``.

Responses are JSON unless the first media range in ``Accept`` is
``application/x-protobuf``, in which case entities and lists are encoded
as ``disasters.Disaster`` / ``disasters.DisasterList`` messages. Bulk
update counts are always JSON.

Example:
    Create a record and search around it:
        >>> response = client.post(
        ...     "/api/v1/disasters",
        ...     json={
        ...         "type": "wildfire",
        ...         "location": {"type": "Point", "coordinates": [-118.25, 34.05]},
        ...         "date": "2025-01-01",
        ...         "status": "active",
        ...     },
        ... )
        >>> response.status_code
        201
        >>> client.get(
        ...     "/api/v1/disasters/near",
        ...     params={"lat": 34.05, "lng": -118.25, "distance": 100},
        ... ).json()[0]["type"]
        'wildfire'
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

import fastapi
import structlog
from starlette import responses

from app.core import config, errors
from app.db import database
from app.db import models as db_models
from app.services import disaster_proto, serialization, validation

T = TypeVar("T")

logger = structlog.get_logger(__name__)

Repository = database.DisasterRepositoryProtocol

LOGGED_BODY_LIMIT = 4096


async def _keep_body(request: fastapi.Request) -> None:
    """Keep the raw request body on ``request.state`` for failure logs."""
    raw = await request.body()
    if raw:
        request.state.body = raw[:LOGGED_BODY_LIMIT].decode("utf-8", errors="replace")


router = fastapi.APIRouter(
    prefix="/api/v1/disasters",
    tags=["disasters"],
    dependencies=[fastapi.Depends(_keep_body)],
)


class ProtobufResponse(responses.Response):
    """Response carrying a serialized protobuf message."""

    media_type = disaster_proto.MEDIA_TYPE

    def render(self, content: Any) -> bytes:
        if content is None:
            return b""
        if isinstance(content, bytes):
            return content
        return content.SerializeToString()


def _get_repo(request: fastapi.Request) -> database.DisasterRepositoryProtocol:
    """Resolve the disaster repository dependency.

    Args:
        request: Incoming request; the started ``Database`` lives on
            ``app.state``.

    Returns:
        DisasterRepositoryProtocol implementation
            (PostgresDisasterRepository in production).
    """
    return database.get_disaster_repository(request.app.state.database)


def _wants_protobuf(request: fastapi.Request) -> bool:
    return serialization.wants_protobuf(request.headers.get("accept"))


def _entity_response(
    request: fastapi.Request,
    disaster: db_models.Disaster,
    status_code: int = 200,
) -> responses.Response:
    if _wants_protobuf(request):
        return ProtobufResponse(
            serialization.to_message(disaster), status_code=status_code
        )
    return responses.JSONResponse(
        serialization.to_dto(disaster), status_code=status_code
    )


def _list_response(
    request: fastapi.Request,
    disasters: Sequence[db_models.Disaster],
    *,
    wrap: bool = True,
    status_code: int = 200,
) -> responses.Response:
    if _wants_protobuf(request):
        return ProtobufResponse(
            serialization.to_message_list(disasters), status_code=status_code
        )
    data = [serialization.to_dto(d) for d in disasters]
    return responses.JSONResponse(
        {"data": data} if wrap else data, status_code=status_code
    )


def _require_valid(
    result: validation.ValidationResult[T],
    *,
    code: str = "INVALID_INPUT",
    message: str = "Invalid input",
) -> T:
    if not result.ok:
        raise errors.ValidationError(message, result.errors, code=code)
    return result.value  # type: ignore[return-value]


def _require_id(disaster_id: str) -> str:
    result = validation.validate_id(disaster_id)
    if not result.ok:
        raise errors.MalformedIdError()
    return result.value  # type: ignore[return-value]


@router.get("")
async def list_disasters(
    request: fastapi.Request,
    page: str | None = None,
    limit: str | None = None,
    type: str | None = None,  # noqa: A002
    status: str | None = None,
    date_from: str | None = fastapi.Query(None, alias="dateFrom"),
    date_to: str | None = fastapi.Query(None, alias="dateTo"),
    repo: Repository = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """List records, newest first.

    ``page`` and ``limit`` are lenient (bad values fall back to 1 and 20;
    ``limit`` is capped at 100). ``type`` and ``status`` match exactly and
    ``dateFrom``/``dateTo`` bound the event date inclusively.

    Raises:
        ValidationError: If ``dateFrom`` or ``dateTo`` is not a date
            (400, ``INVALID_QUERY``).
    """
    query = _require_valid(
        validation.validate_list_query(
            page=page,
            limit=limit,
            type=type,
            status=status,
            date_from=date_from,
            date_to=date_to,
        ),
        code="INVALID_QUERY",
        message="Invalid query parameters",
    )
    records = await repo.find(query.skip, query.limit, query.filter)
    return _list_response(request, records)


@router.get("/near")
async def list_disasters_near(
    request: fastapi.Request,
    lat: str | None = None,
    lng: str | None = None,
    distance: str | None = None,
    repo: Repository = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """Return records within ``distance`` kilometres, nearest first.

    Args:
        request: Incoming request (used for content negotiation).
        lat: Latitude of the search center, -90..90.
        lng: Longitude of the search center, -180..180.
        distance: Search radius in kilometres, >= 0.
        repo: Disaster repository (injected via FastAPI Depends).

    Returns:
        Bare JSON array (or ``DisasterList`` message) ordered by distance.

    Raises:
        ValidationError: If any parameter is missing, non-numeric or out
            of range (400, ``INVALID_QUERY``).
    """
    near = _require_valid(
        validation.validate_near_query(
            {"lat": lat, "lng": lng, "distance": distance}
        ),
        code="INVALID_QUERY",
        message="Invalid query parameters",
    )
    records = await repo.find_near(near.lat, near.lng, near.distance)
    return _list_response(request, records, wrap=False)


@router.post("/bulk")
async def bulk_insert_disasters(
    request: fastapi.Request,
    body: Any = fastapi.Body(None),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    repo: Repository = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """Insert up to ``max_bulk_items`` records in one statement.

    Either every item is inserted or none is: one invalid item rejects
    the request and a store failure rolls the whole batch back.

    Raises:
        ValidationError: If the body is not a non-empty array of valid
            items (400, ``INVALID_INPUT``).
        BulkWriteError: If the store rejects the batch
            (400, ``BULK_INSERT_ERROR``).
    """
    items = _require_valid(
        validation.validate_bulk_create(body, max_items=settings.max_bulk_items)
    )
    try:
        records = await repo.bulk_insert(items)
    except errors.StoreError as exc:
        raise errors.BulkWriteError(
            "Bulk insert failed", [exc.message], code="BULK_INSERT_ERROR"
        ) from exc
    logger.info("bulk insert completed", inserted=len(records))
    return _list_response(request, records, status_code=201)


@router.put("/bulk")
async def bulk_update_disasters(
    body: Any = fastapi.Body(None),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    repo: Repository = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, int]:
    """Apply partial updates to many records.

    Well-formed ids that match no record are tolerated: they count towards
    ``matchedCount`` but not ``modifiedCount``.

    Raises:
        ValidationError: If the body or any item is invalid
            (400, ``INVALID_INPUT``).
        BulkWriteError: If the store fails (400, ``BULK_UPDATE_ERROR``).
    """
    updates = _require_valid(
        validation.validate_bulk_update(body, max_items=settings.max_bulk_items)
    )
    try:
        result = await repo.bulk_update(updates)
    except errors.StoreError as exc:
        raise errors.BulkWriteError(
            "Bulk update failed", [exc.message], code="BULK_UPDATE_ERROR"
        ) from exc
    logger.info(
        "bulk update completed",
        matched=result.matched_count,
        modified=result.modified_count,
    )
    return {
        "matchedCount": result.matched_count,
        "modifiedCount": result.modified_count,
    }


@router.get("/{disaster_id}")
async def get_disaster(
    request: fastapi.Request,
    disaster_id: str,
    repo: Repository = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """Fetch one record.

    Raises:
        MalformedIdError: If ``disaster_id`` is not a UUID (400).
        NotFoundError: If no record has that id (404).
    """
    record = await repo.get(_require_id(disaster_id))
    if record is None:
        raise errors.NotFoundError()
    return _entity_response(request, record)


@router.post("")
async def create_disaster(
    request: fastapi.Request,
    body: Any = fastapi.Body(None),  # noqa: B008
    repo: Repository = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """Create one record and return it with status 201."""
    data = _require_valid(validation.validate_create(body))
    record = await repo.create(data)
    logger.info("disaster created", disaster_id=record.id, type=record.type)
    return _entity_response(request, record, status_code=201)


@router.put("/{disaster_id}")
async def replace_disaster(
    request: fastapi.Request,
    disaster_id: str,
    body: Any = fastapi.Body(None),  # noqa: B008
    repo: Repository = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """Replace every field of a record.

    The body follows the create rules; a ``description`` left out is
    kept as it was.

    Raises:
        MalformedIdError: If ``disaster_id`` is not a UUID (400).
        ValidationError: If the body is invalid (400).
        NotFoundError: If no record has that id (404).
    """
    key = _require_id(disaster_id)
    data = _require_valid(validation.validate_full_update(body))
    record = await repo.update(key, db_models.DisasterPatch.from_input(data))
    if record is None:
        raise errors.NotFoundError()
    return _entity_response(request, record)


@router.delete("/{disaster_id}", status_code=204)
async def delete_disaster(
    request: fastapi.Request,
    disaster_id: str,
    repo: Repository = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """Delete one record; the response has no body.

    Raises:
        MalformedIdError: If ``disaster_id`` is not a UUID (400).
        NotFoundError: If no record has that id (404).
    """
    if not await repo.delete(_require_id(disaster_id)):
        raise errors.NotFoundError()
    logger.info("disaster deleted", disaster_id=disaster_id)
    if _wants_protobuf(request):
        return ProtobufResponse(serialization.empty_message(), status_code=204)
    return responses.Response(status_code=204)
