"""App package initializer for the disaster records backend.

This package contains a FastAPI service that stores disaster events
(type, location, date, status and description) in PostgreSQL with
PostGIS and serves them over REST, GraphQL and a Protocol Buffers
representation negotiated through the ``Accept`` header.

- Validates every payload and query string against one rule set shared
  by REST and GraphQL
- Stores locations as ``geography(Point, 4326)`` so proximity searches
  measure real distances on the globe
- Supports all-or-nothing bulk inserts and tolerant bulk updates
- Logs with structlog and tags every request with a correlation id

See module sub-docstrings for details on architecture and usage.
"""
