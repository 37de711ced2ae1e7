"""GraphQL endpoint for disaster records.

Exposes the same operations as the REST router through a strawberry
schema mounted at ``/graphql``. Inputs are converted back to plain
mappings and run through ``app.services.validation`` so both surfaces
share one set of rules and messages.

Failures are reported as GraphQL errors whose ``extensions.code`` is a
stable contract:

- ``BAD_USER_INPUT``: validation failure or malformed id; the individual
  messages are listed in ``extensions.details``.
- ``NOT_FOUND``: well-formed id with no matching record.
- ``INTERNAL_ERROR``: store or unexpected failure (logged, not leaked).

Example:
    Query the nearest records:
        >>> response = client.post(
        ...     "/graphql",
        ...     json={"query": "{ disastersNear(lat: 34.05, lng: -118.25,"
        ...            " distance: 100) { id type } }"},
        ... )
"""

from __future__ import annotations

import contextlib
import math
from collections.abc import Iterator
from typing import Any, TypeVar

import fastapi
import strawberry
import structlog
from graphql import GraphQLError
from strawberry.fastapi import GraphQLRouter
from strawberry.types import Info

from app.api import disasters as api_disasters
from app.api import graphql_types as gql
from app.core import config, errors
from app.db import database
from app.services import validation

T = TypeVar("T")

logger = structlog.get_logger(__name__)

Repository = database.DisasterRepositoryProtocol


async def get_context(
    repo: Repository = fastapi.Depends(api_disasters._get_repo),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Build the resolver context; merged into strawberry's default context."""
    return {"repo": repo, "settings": settings}


def _repo(info: Info) -> database.DisasterRepositoryProtocol:
    return info.context["repo"]


def _checked(result: validation.ValidationResult[T]) -> T:
    if not result.ok:
        raise errors.ValidationError("; ".join(result.errors), result.errors)
    return result.value  # type: ignore[return-value]


@contextlib.contextmanager
def _graphql_errors(action: str) -> Iterator[None]:
    """Translate service errors raised inside a resolver into GraphQL errors."""
    try:
        yield
    except (errors.ValidationError, errors.MalformedIdError) as exc:
        raise GraphQLError(
            exc.message,
            extensions={"code": "BAD_USER_INPUT", "details": exc.details},
        ) from exc
    except errors.NotFoundError as exc:
        raise GraphQLError("Not found", extensions={"code": "NOT_FOUND"}) from exc
    except Exception as exc:
        logger.exception("graphql resolver failed", action=action)
        raise GraphQLError(
            f"Failed to {action}", extensions={"code": "INTERNAL_ERROR"}
        ) from exc


def _disaster_id(raw: strawberry.ID) -> str:
    result = validation.validate_id(str(raw))
    if not result.ok:
        raise errors.MalformedIdError(result.errors[0], result.errors)
    return result.value  # type: ignore[return-value]


@strawberry.type
class Query:
    @strawberry.field
    async def disasters(
        self,
        info: Info,
        page: int | None = None,
        limit: int | None = None,
        type: str | None = None,  # noqa: A002
        status: gql.DisasterStatus | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> gql.DisasterPage:
        """Paginated listing, newest first."""
        with _graphql_errors("fetch disasters"):
            query = _checked(
                validation.validate_list_query(
                    page=page,
                    limit=limit,
                    type=type,
                    status=status.value if status is not None else None,
                    date_from=date_from,
                    date_to=date_to,
                )
            )
            repo = _repo(info)
            records = await repo.find(query.skip, query.limit, query.filter)
            total = await repo.count(query.filter)
            return gql.DisasterPage(
                data=[gql.Disaster.from_domain(r) for r in records],
                page=query.page,
                limit=query.limit,
                total=total,
                total_pages=math.ceil(total / query.limit),
            )

    @strawberry.field
    async def disaster(
        self,
        info: Info,
        id: strawberry.ID,  # noqa: A002
    ) -> gql.Disaster:
        with _graphql_errors("fetch disaster"):
            record = await _repo(info).get(_disaster_id(id))
            if record is None:
                raise errors.NotFoundError()
            return gql.Disaster.from_domain(record)

    @strawberry.field
    async def disasters_near(
        self,
        info: Info,
        lat: float,
        lng: float,
        distance: float,
    ) -> list[gql.Disaster]:
        """Records within ``distance`` kilometres, nearest first."""
        with _graphql_errors("fetch disasters near location"):
            near = _checked(
                validation.validate_near_query(
                    {"lat": lat, "lng": lng, "distance": distance}
                )
            )
            records = await _repo(info).find_near(near.lat, near.lng, near.distance)
            return [gql.Disaster.from_domain(r) for r in records]


@strawberry.type
class Mutation:
    @strawberry.mutation
    async def create_disaster(
        self,
        info: Info,
        input: gql.DisasterInput,  # noqa: A002
    ) -> gql.Disaster:
        with _graphql_errors("create disaster"):
            data = _checked(validation.validate_create(input.to_payload()))
            return gql.Disaster.from_domain(await _repo(info).create(data))

    @strawberry.mutation
    async def update_disaster(
        self,
        info: Info,
        id: strawberry.ID,  # noqa: A002
        input: gql.DisasterPatchInput,  # noqa: A002
    ) -> gql.Disaster:
        """Partial update: only supplied, non-null fields change."""
        with _graphql_errors("update disaster"):
            key = _disaster_id(id)
            patch = _checked(validation.validate_update(input.to_payload()))
            record = await _repo(info).update(key, patch)
            if record is None:
                raise errors.NotFoundError()
            return gql.Disaster.from_domain(record)

    @strawberry.mutation
    async def delete_disaster(
        self,
        info: Info,
        id: strawberry.ID,  # noqa: A002
    ) -> bool:
        with _graphql_errors("delete disaster"):
            if not await _repo(info).delete(_disaster_id(id)):
                raise errors.NotFoundError()
            return True

    @strawberry.mutation
    async def bulk_insert_disasters(
        self,
        info: Info,
        inputs: list[gql.DisasterInput],
    ) -> list[gql.Disaster]:
        """Insert every input or none of them."""
        with _graphql_errors("bulk insert disasters"):
            items = _checked(
                validation.validate_bulk_create(
                    [item.to_payload() for item in inputs],
                    max_items=info.context["settings"].max_bulk_items,
                )
            )
            records = await _repo(info).bulk_insert(items)
            return [gql.Disaster.from_domain(r) for r in records]

    @strawberry.mutation
    async def bulk_update_disasters(
        self,
        info: Info,
        updates: list[gql.DisasterBulkUpdateInput],
    ) -> gql.BulkUpdateResult:
        with _graphql_errors("bulk update disasters"):
            items = _checked(
                validation.validate_bulk_update(
                    [item.to_payload() for item in updates],
                    max_items=info.context["settings"].max_bulk_items,
                )
            )
            result = await _repo(info).bulk_update(items)
            return gql.BulkUpdateResult.from_domain(result)


schema = strawberry.Schema(query=Query, mutation=Mutation)


def create_router(settings: config.Settings) -> GraphQLRouter:
    """Build the FastAPI router serving the schema.

    Args:
        settings: Application settings; ``graphiql`` toggles the in-browser IDE.

    Returns:
        Router to include under ``/graphql``.
    """
    return GraphQLRouter(
        schema,
        context_getter=get_context,
        graphql_ide="graphiql" if settings.graphiql else None,
    )
