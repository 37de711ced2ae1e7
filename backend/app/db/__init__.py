"""Persistence layer for disaster records.

``app.db.models`` holds the domain dataclasses and ``app.db.database``
the repository protocol, its in-memory and PostGIS implementations and
the ``Database`` object that owns the connection pool.

Example:
    Use in a service or FastAPI dependency:
        >>> from app.db import database
        >>> repo = database.get_disaster_repository(app.state.database)
"""
