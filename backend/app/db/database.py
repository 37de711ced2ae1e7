"""Database helpers and repositories for disaster records."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import datetime
import itertools
import math
import uuid
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, cast

import psycopg2
import psycopg2.extensions
import psycopg2.extras
import psycopg2.pool
import structlog

from app.core import errors
from app.db import models as db_models
from app.services import geo
from app.utils import dates

T = TypeVar("T")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    from app.core import config

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

SELECT_COLUMNS = (
    "id::text AS id, type, ST_AsGeoJSON(location) AS location, date, "
    "description, status, created_at, updated_at"
)


def _cast(value: object, dtype: type[T]) -> T | None:  # type: ignore[misc]
    """Cast a value to a specific type, returning None if value is None."""
    if value is None:
        return None

    return cast(T, value)


def parse_uuid(value: object) -> str | None:
    """Return the canonical UUID string, or None if ``value`` is malformed."""
    if not isinstance(value, str):
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return None


def clamp_skip(skip: object) -> int:
    """Clamp an offset to a non-negative integer (invalid values become 0)."""
    try:
        value = int(skip)  # type: ignore[call-overload]
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(value, 0)


def clamp_limit(limit: object) -> int:
    """Clamp a page size to ``1..MAX_LIMIT`` (invalid values become 20)."""
    try:
        value = int(limit)  # type: ignore[call-overload]
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_LIMIT
    if value <= 0:
        return DEFAULT_LIMIT
    return min(value, MAX_LIMIT)


def _check_required(data: db_models.DisasterInput) -> None:
    missing = [
        name for name in ("type", "location", "date") if not getattr(data, name)
    ]
    if missing:
        raise errors.ValidationError(
            "Missing required fields",
            [f"{name} is required" for name in missing],
        )


def _valid_search(lat: float, lng: float, distance_km: float) -> bool:
    if not geo.is_valid_coordinate(lat, lng):
        return False
    try:
        distance = float(distance_km)
    except (TypeError, ValueError):
        return False
    return math.isfinite(distance) and distance >= 0


class DisasterRepositoryProtocol(Protocol):
    """Protocol interface for storing and querying disaster records.

    Implementations provide persistence for Disaster objects, supporting
    both in-memory (testing) and PostgreSQL/PostGIS (production) backends.
    All operations are coroutines so request handlers never block the
    event loop on database I/O.
    """

    async def create(self, data: db_models.DisasterInput) -> db_models.Disaster: ...

    async def find(
        self,
        skip: int = 0,
        limit: int = DEFAULT_LIMIT,
        filter: db_models.DisasterFilter | None = None,  # noqa: A002
    ) -> list[db_models.Disaster]: ...

    async def count(
        self,
        filter: db_models.DisasterFilter | None = None,  # noqa: A002
    ) -> int: ...

    async def get(self, disaster_id: str) -> db_models.Disaster | None: ...

    async def update(
        self,
        disaster_id: str,
        patch: db_models.DisasterPatch,
    ) -> db_models.Disaster | None: ...

    async def delete(self, disaster_id: str) -> bool: ...

    async def bulk_insert(
        self,
        items: Sequence[db_models.DisasterInput],
    ) -> list[db_models.Disaster]: ...

    async def bulk_update(
        self,
        updates: Sequence[db_models.DisasterUpdate],
    ) -> db_models.BulkUpdateResult: ...

    async def find_near(
        self,
        lat: float,
        lng: float,
        distance_km: float,
    ) -> list[db_models.Disaster]: ...

    async def ping(self) -> bool: ...


class InMemoryDisasterRepository(DisasterRepositoryProtocol):
    """Simple in-memory store for tests and local development.

    Stores disasters in a dictionary. Data is lost when the process exits.
    Proximity search uses the haversine distance, so results match the
    PostGIS backend up to the sphere/spheroid difference.
    """

    def __init__(self) -> None:
        """Initialize an empty in-memory repository."""
        self._store: dict[str, db_models.Disaster] = {}
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()

    @staticmethod
    def _now() -> datetime.datetime:
        return datetime.datetime.now(datetime.UTC)

    def _insert(self, data: db_models.DisasterInput) -> db_models.Disaster:
        now = self._now()
        record = db_models.Disaster(
            id=str(uuid.uuid4()),
            type=data.type,
            location=data.location,
            date=dates.format_event_date(data.date),
            status=data.status or db_models.DEFAULT_STATUS,
            description=data.description,
            created_at=now,
            updated_at=now,
        )
        self._store[record.id] = record
        self._sequence[record.id] = next(self._counter)
        return dataclasses.replace(record)

    def _lookup(self, disaster_id: str) -> db_models.Disaster | None:
        key = parse_uuid(disaster_id)
        return self._store.get(key) if key is not None else None

    def _apply(
        self,
        record: db_models.Disaster,
        changes: dict[str, Any],
    ) -> db_models.Disaster:
        if "date" in changes:
            changes = {**changes, "date": dates.format_event_date(changes["date"])}
        now = self._now()
        # updated_at must strictly increase even within one clock tick
        if record.updated_at is not None and now <= record.updated_at:
            now = record.updated_at + datetime.timedelta(microseconds=1)
        updated = dataclasses.replace(record, **changes, updated_at=now)
        self._store[record.id] = updated
        return dataclasses.replace(updated)

    @staticmethod
    def _matches(
        record: db_models.Disaster,
        filter: db_models.DisasterFilter,  # noqa: A002
    ) -> bool:
        if filter.type is not None and record.type != filter.type:
            return False
        if filter.status is not None and record.status != filter.status:
            return False
        event_date = datetime.date.fromisoformat(record.date)
        if filter.date_from is not None and event_date < filter.date_from:
            return False
        return not (filter.date_to is not None and event_date > filter.date_to)

    def _newest_first(
        self,
        records: list[db_models.Disaster],
    ) -> list[db_models.Disaster]:
        return sorted(
            records,
            key=lambda r: (r.created_at, self._sequence[r.id]),
            reverse=True,
        )

    async def create(self, data: db_models.DisasterInput) -> db_models.Disaster:
        """Insert one record and return it with id and timestamps assigned.

        Raises:
            ValidationError: If type, location or date is missing.
        """
        _check_required(data)
        return self._insert(data)

    async def find(
        self,
        skip: int = 0,
        limit: int = DEFAULT_LIMIT,
        filter: db_models.DisasterFilter | None = None,  # noqa: A002
    ) -> list[db_models.Disaster]:
        """Return one page of records, newest first."""
        criteria = filter or db_models.DisasterFilter()
        start = clamp_skip(skip)
        size = clamp_limit(limit)
        matching = [r for r in self._store.values() if self._matches(r, criteria)]
        page = self._newest_first(matching)[start : start + size]
        return [dataclasses.replace(r) for r in page]

    async def count(
        self,
        filter: db_models.DisasterFilter | None = None,  # noqa: A002
    ) -> int:
        criteria = filter or db_models.DisasterFilter()
        return sum(1 for r in self._store.values() if self._matches(r, criteria))

    async def get(self, disaster_id: str) -> db_models.Disaster | None:
        """Retrieve a record by ID.

        Returns:
            Disaster if found, None when missing or the id is malformed.
        """
        record = self._lookup(disaster_id)
        return dataclasses.replace(record) if record is not None else None

    async def update(
        self,
        disaster_id: str,
        patch: db_models.DisasterPatch,
    ) -> db_models.Disaster | None:
        """Merge supplied fields into an existing record."""
        record = self._lookup(disaster_id)
        if record is None:
            return None
        changes = patch.changes()
        if not changes:
            return dataclasses.replace(record)
        return self._apply(record, changes)

    async def delete(self, disaster_id: str) -> bool:
        key = parse_uuid(disaster_id)
        if key is None or key not in self._store:
            return False
        del self._store[key]
        del self._sequence[key]
        return True

    async def bulk_insert(
        self,
        items: Sequence[db_models.DisasterInput],
    ) -> list[db_models.Disaster]:
        for data in items:
            _check_required(data)
        return [self._insert(data) for data in items]

    async def bulk_update(
        self,
        updates: Sequence[db_models.DisasterUpdate],
    ) -> db_models.BulkUpdateResult:
        result = db_models.BulkUpdateResult(matched_count=len(updates))
        for item in updates:
            if await self.update(item.id, item.patch) is not None:
                result.modified_count += 1
        return result

    async def find_near(
        self,
        lat: float,
        lng: float,
        distance_km: float,
    ) -> list[db_models.Disaster]:
        """Return records within ``distance_km`` kilometres, nearest first."""
        if not _valid_search(lat, lng, distance_km):
            return []
        center = db_models.GeoPoint((float(lng), float(lat)))
        hits = []
        for record in self._store.values():
            distance = geo.haversine_km(center, record.location)
            if distance <= float(distance_km):
                hits.append((distance, self._sequence[record.id], record))
        hits.sort(key=lambda hit: (hit[0], hit[1]))
        return [dataclasses.replace(record) for _, _, record in hits]

    async def ping(self) -> bool:
        return True


class Database:
    """PostgreSQL connection pool with an explicit start/stop lifecycle.

    One instance is created per application (in the FastAPI lifespan) and
    shared by every repository. Connections are checked out per operation
    and returned promptly; ``slots`` makes callers wait for a free
    connection once all of them are in use.
    """

    CREATE_EXTENSION_SQL = "CREATE EXTENSION IF NOT EXISTS postgis;"

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS disasters (
      id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      type TEXT NOT NULL,
      location GEOGRAPHY(Point, 4326) NOT NULL,
      date DATE NOT NULL,
      description TEXT,
      status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'contained', 'resolved')),
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """

    CREATE_INDEXES_SQL = (
        "CREATE INDEX IF NOT EXISTS disasters_location_gix "
        "ON disasters USING GIST (location);",
        "CREATE INDEX IF NOT EXISTS disasters_created_at_idx "
        "ON disasters (created_at DESC);",
    )

    def __init__(self, settings: config.Settings) -> None:
        """Initialize the pool owner with database settings.

        Args:
            settings: Application settings containing connection URL
                and pool bounds.
        """
        self.settings = settings
        self._pool: psycopg2.pool.ThreadedConnectionPool | None = None
        # one slot per pooled connection; getconn raises instead of waiting
        self.slots = asyncio.Semaphore(settings.db_pool_max_size)

    @property
    def started(self) -> bool:
        return self._pool is not None

    def start(self, *, ensure_schema: bool = True) -> None:
        """Open the connection pool and optionally bootstrap the schema.

        Raises:
            StoreError: If PostgreSQL cannot be reached.
        """
        if self._pool is not None:
            return
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                self.settings.db_pool_min_size,
                self.settings.db_pool_max_size,
                dsn=self.settings.database_url,
            )
        except psycopg2.Error as exc:
            logger.error("failed to connect to PostgreSQL", error=str(exc))
            raise errors.StoreError(
                f"PostgreSQL connection failed: {exc}".strip()
            ) from exc
        logger.info(
            "database pool started",
            min_size=self.settings.db_pool_min_size,
            max_size=self.settings.db_pool_max_size,
        )
        if ensure_schema:
            self.ensure_schema()

    def stop(self) -> None:
        """Close every pooled connection."""
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("database pool stopped")

    @contextlib.contextmanager
    def connection(self) -> Iterator[psycopg2.extensions.connection]:
        """Check a connection out of the pool for the duration of a block."""
        if self._pool is None:
            raise errors.StoreError("Database pool is not started")
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    def ensure_schema(self) -> None:
        """Ensure the PostGIS extension, disasters table and indexes exist."""
        try:
            with self.connection() as conn, conn, conn.cursor() as cur:
                cur.execute(self.CREATE_EXTENSION_SQL)
                cur.execute(self.CREATE_TABLE_SQL)
                for statement in self.CREATE_INDEXES_SQL:
                    cur.execute(statement)
        except psycopg2.Error as exc:
            logger.error("failed to ensure disasters schema", error=str(exc))
            raise errors.StoreError(
                f"Failed to ensure disasters table/index: {exc}".strip()
            ) from exc

    def ping(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            with self.connection() as conn, conn, conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        except (psycopg2.Error, errors.StoreError) as exc:
            logger.warning("database ping failed", error=str(exc))
            return False
        return True


class PostgresDisasterRepository(DisasterRepositoryProtocol):
    """PostgreSQL/PostGIS-backed repository for disaster records.

    Locations are stored as ``geography(Point, 4326)``. Each operation runs
    in a worker thread on one pooled connection inside a single
    transaction; ``bulk_update`` therefore commits or rolls back as a whole.
    """

    INSERT_COLUMNS = "type, location, date, description, status"

    def __init__(self, database: Database) -> None:
        self.database = database

    def _run_sync(
        self,
        work: Callable[[psycopg2.extras.RealDictCursor], T],
    ) -> T:
        try:
            with self.database.connection() as conn:
                with conn, conn.cursor(
                    cursor_factory=psycopg2.extras.RealDictCursor
                ) as cur:
                    return work(cur)
        except psycopg2.Error as exc:
            message = str(exc).strip() or type(exc).__name__
            logger.error("database operation failed", error=message)
            raise errors.StoreError(message) from exc

    async def _execute(
        self,
        work: Callable[[psycopg2.extras.RealDictCursor], T],
    ) -> T:
        async with self.database.slots:
            return await asyncio.to_thread(self._run_sync, work)

    async def create(self, data: db_models.DisasterInput) -> db_models.Disaster:
        _check_required(data)
        params = self._to_params(data)

        def work(cur: psycopg2.extras.RealDictCursor) -> db_models.Disaster:
            cur.execute(
                f"""
                INSERT INTO disasters ({self.INSERT_COLUMNS})
                VALUES (%(type)s, ST_GeogFromText(%(location)s), %(date)s,
                        %(description)s, %(status)s)
                RETURNING {SELECT_COLUMNS}
                """,  # noqa: S608
                params,
            )
            return self._from_row(cast(dict[str, object], cur.fetchone()))

        return await self._execute(work)

    async def find(
        self,
        skip: int = 0,
        limit: int = DEFAULT_LIMIT,
        filter: db_models.DisasterFilter | None = None,  # noqa: A002
    ) -> list[db_models.Disaster]:
        where, params = self._build_where(filter)
        params.update(skip=clamp_skip(skip), limit=clamp_limit(limit))

        def work(cur: psycopg2.extras.RealDictCursor) -> list[db_models.Disaster]:
            cur.execute(
                f"""
                SELECT {SELECT_COLUMNS}
                FROM disasters
                {where}
                ORDER BY created_at DESC
                OFFSET %(skip)s LIMIT %(limit)s
                """,  # noqa: S608
                params,
            )
            return [
                self._from_row(cast(dict[str, object], row))
                for row in cur.fetchall()
            ]

        return await self._execute(work)

    async def count(
        self,
        filter: db_models.DisasterFilter | None = None,  # noqa: A002
    ) -> int:
        where, params = self._build_where(filter)

        def work(cur: psycopg2.extras.RealDictCursor) -> int:
            cur.execute(
                f"SELECT COUNT(*) AS count FROM disasters {where}",  # noqa: S608
                params,
            )
            row = cur.fetchone()
            return int(row["count"]) if row is not None else 0

        return await self._execute(work)

    async def get(self, disaster_id: str) -> db_models.Disaster | None:
        key = parse_uuid(disaster_id)
        if key is None:
            return None

        def work(cur: psycopg2.extras.RealDictCursor) -> db_models.Disaster | None:
            return self._select_one(cur, key)

        return await self._execute(work)

    async def update(
        self,
        disaster_id: str,
        patch: db_models.DisasterPatch,
    ) -> db_models.Disaster | None:
        key = parse_uuid(disaster_id)
        if key is None:
            return None
        changes = patch.changes()

        def work(cur: psycopg2.extras.RealDictCursor) -> db_models.Disaster | None:
            return self._apply_update(cur, key, changes)

        return await self._execute(work)

    async def delete(self, disaster_id: str) -> bool:
        key = parse_uuid(disaster_id)
        if key is None:
            return False

        def work(cur: psycopg2.extras.RealDictCursor) -> bool:
            cur.execute("DELETE FROM disasters WHERE id = %(id)s::uuid", {"id": key})
            return cur.rowcount > 0

        return await self._execute(work)

    async def bulk_insert(
        self,
        items: Sequence[db_models.DisasterInput],
    ) -> list[db_models.Disaster]:
        """Insert every item with one multi-row INSERT statement."""
        if not items:
            return []
        for data in items:
            _check_required(data)
        values = [
            (p["type"], p["location"], p["date"], p["description"], p["status"])
            for p in map(self._to_params, items)
        ]

        def work(cur: psycopg2.extras.RealDictCursor) -> list[db_models.Disaster]:
            rows = psycopg2.extras.execute_values(
                cur,
                f"""
                INSERT INTO disasters ({self.INSERT_COLUMNS}) VALUES %s
                RETURNING {SELECT_COLUMNS}
                """,  # noqa: S608
                values,
                template="(%s, ST_GeogFromText(%s), %s, %s, %s)",
                page_size=len(values),
                fetch=True,
            )
            return [self._from_row(cast(dict[str, object], row)) for row in rows]

        return await self._execute(work)

    async def bulk_update(
        self,
        updates: Sequence[db_models.DisasterUpdate],
    ) -> db_models.BulkUpdateResult:
        """Apply every update inside one transaction.

        Well-formed ids that match nothing are counted in ``matched_count``
        only. Any database error rolls the whole batch back.
        """
        if not updates:
            return db_models.BulkUpdateResult()
        planned = [(parse_uuid(u.id), u.patch.changes()) for u in updates]

        def work(cur: psycopg2.extras.RealDictCursor) -> db_models.BulkUpdateResult:
            result = db_models.BulkUpdateResult(matched_count=len(planned))
            for key, changes in planned:
                if key is None:
                    continue
                if self._apply_update(cur, key, changes) is not None:
                    result.modified_count += 1
            return result

        return await self._execute(work)

    async def find_near(
        self,
        lat: float,
        lng: float,
        distance_km: float,
    ) -> list[db_models.Disaster]:
        if not _valid_search(lat, lng, distance_km):
            return []
        sql, params = geo.build_near_query(SELECT_COLUMNS, lat, lng, distance_km)

        def work(cur: psycopg2.extras.RealDictCursor) -> list[db_models.Disaster]:
            cur.execute(sql, params)
            return [
                self._from_row(cast(dict[str, object], row))
                for row in cur.fetchall()
            ]

        return await self._execute(work)

    async def ping(self) -> bool:
        async with self.database.slots:
            return await asyncio.to_thread(self.database.ping)

    def _select_one(
        self,
        cur: psycopg2.extras.RealDictCursor,
        key: str,
    ) -> db_models.Disaster | None:
        cur.execute(
            f"""
            SELECT {SELECT_COLUMNS}
            FROM disasters
            WHERE id = %(id)s::uuid
            """,  # noqa: S608
            {"id": key},
        )
        row = cur.fetchone()
        return self._from_row(cast(dict[str, object], row)) if row else None

    def _apply_update(
        self,
        cur: psycopg2.extras.RealDictCursor,
        key: str,
        changes: dict[str, Any],
    ) -> db_models.Disaster | None:
        if not changes:
            return self._select_one(cur, key)
        assignments, params = self._build_assignments(changes)
        params["id"] = key
        cur.execute(
            f"""
            UPDATE disasters
            SET {assignments}
            WHERE id = %(id)s::uuid
            RETURNING {SELECT_COLUMNS}
            """,  # noqa: S608
            params,
        )
        row = cur.fetchone()
        return self._from_row(cast(dict[str, object], row)) if row else None

    @staticmethod
    def _build_where(
        filter: db_models.DisasterFilter | None,  # noqa: A002
    ) -> tuple[str, dict[str, object]]:
        """Translate a filter into a WHERE clause with named parameters.

        Args:
            filter: Optional filter; None matches every row.

        Returns:
            Tuple of the clause (empty when unfiltered) and its parameters.
        """
        if filter is None:
            return "", {}
        conditions: list[str] = []
        params: dict[str, object] = {}
        if filter.type is not None:
            conditions.append("type = %(type)s")
            params["type"] = filter.type
        if filter.status is not None:
            conditions.append("status = %(status)s")
            params["status"] = filter.status
        if filter.date_from is not None:
            conditions.append("date >= %(date_from)s")
            params["date_from"] = filter.date_from
        if filter.date_to is not None:
            conditions.append("date <= %(date_to)s")
            params["date_to"] = filter.date_to
        if not conditions:
            return "", params
        return "WHERE " + " AND ".join(conditions), params

    @staticmethod
    def _build_assignments(
        changes: dict[str, Any],
    ) -> tuple[str, dict[str, object]]:
        """Build the SET list for a partial update.

        Column names come from ``DisasterPatch`` fields, never from callers.
        ``updated_at`` is always refreshed.
        """
        assignments: list[str] = []
        params: dict[str, object] = {}
        for column, value in changes.items():
            if column == "location":
                assignments.append("location = ST_GeogFromText(%(location)s)")
                params["location"] = geo.point_to_wkt(value)
            else:
                assignments.append(f"{column} = %({column})s")
                params[column] = value
        assignments.append("updated_at = now()")
        return ", ".join(assignments), params

    @staticmethod
    def _to_params(data: db_models.DisasterInput) -> dict[str, object]:
        """Convert DisasterInput to named parameters for an INSERT.

        Args:
            data: Normalized create payload.

        Returns:
            Dictionary suitable for parameterized SQL insertion.
        """
        return {
            "type": data.type,
            "location": geo.point_to_wkt(data.location),
            "date": data.date,
            "description": data.description,
            "status": data.status or db_models.DEFAULT_STATUS,
        }

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.Disaster:
        """Convert a database row dictionary to a Disaster.

        Args:
            row: Dictionary from a RealDictCursor query result.

        Returns:
            Disaster with GeoJSON location and ``YYYY-MM-DD`` date.
        """
        return db_models.Disaster(
            id=str(row["id"]),
            type=str(row["type"]),
            location=geo.point_from_geojson(row.get("location")),
            date=dates.format_event_date(row.get("date")),
            status=_cast(row.get("status"), str),
            description=_cast(row.get("description"), str),
            created_at=_cast(row.get("created_at"), datetime.datetime),
            updated_at=_cast(row.get("updated_at"), datetime.datetime),
        )


def get_disaster_repository(database: Database) -> DisasterRepositoryProtocol:
    """Factory function to create a disaster repository.

    Args:
        database: Started connection pool owner.

    Returns:
        PostgresDisasterRepository instance for production use.
    """
    return PostgresDisasterRepository(database)
