"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without alembic.context.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

DRIVER = "postgresql+psycopg2"


def libpq_dsn_to_url(dsn: str) -> URL:
    """Convert a libpq key=value DSN into a SQLAlchemy URL.

    A host starting with "/" (unix socket) is passed as the `host` query
    parameter, as SQLAlchemy expects for psycopg2.
    """
    params = parse_dsn(dsn)
    host = params.pop("host", "localhost")
    port = params.pop("port", None)
    query: dict[str, str] = {}
    if host.startswith("/"):
        query["host"] = host
        host = port = None
    else:
        port = int(port or 5432)

    return URL.create(
        DRIVER,
        username=params.pop("user", None),
        password=params.pop("password", None) or os.environ.get("DB_PASSWORD") or None,
        host=host,
        port=port,
        database=params.pop("dbname", None),
        query={**query, **params},
    )


def database_url() -> URL:
    """SQLAlchemy URL from DATABASE_URL (URL or libpq DSN), plus DB_PASSWORD.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    raw = os.environ.get("DATABASE_URL")
    if not raw:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" not in raw:
        return libpq_dsn_to_url(raw)

    url = make_url(raw)
    # Hosted providers hand out postgres:// URLs
    url = url.set(drivername=DRIVER)
    if not url.password and os.environ.get("DB_PASSWORD"):
        url = url.set(password=os.environ["DB_PASSWORD"])
    return url
