"""Create (or reset) the configured Postgres database before migrating."""
from __future__ import annotations

import argparse
import logging
import sys
from urllib.parse import urlsplit, urlunsplit

import psycopg
from psycopg import sql

from remit_chat.core.settings import settings

logger = logging.getLogger("remit_chat.ensure_db")


def to_libpq_url(uri: str) -> str:
    """Return ``uri`` with any SQLAlchemy driver suffix removed (postgresql+psycopg -> postgresql)."""
    cleaned = (uri or "").strip().strip("'\"")
    if not cleaned:
        raise ValueError("DATABASE_URL is empty")
    parts = urlsplit(cleaned)
    scheme = parts.scheme.split("+", 1)[0]
    return urlunsplit((scheme, parts.netloc, parts.path, parts.query, parts.fragment))


def is_postgres_url(uri: str) -> bool:
    return urlsplit(to_libpq_url(uri)).scheme in ("postgres", "postgresql")


def maintenance_target(db_url: str) -> tuple[str, str]:
    """Return ``(admin_url, database_name)`` for a Postgres URL."""
    parts = urlsplit(to_libpq_url(db_url))
    database = parts.path.lstrip("/") or "postgres"
    admin_url = urlunsplit(("postgresql", parts.netloc, "/postgres", parts.query, ""))
    return admin_url, database


def ensure_database_exists(db_url: str) -> bool:
    """Create the database if missing; return True when it was created."""
    admin_url, database = maintenance_target(db_url)
    with psycopg.connect(admin_url, autocommit=True) as conn, conn.cursor() as cur:
        cur.execute("SELECT 1 FROM pg_database WHERE datname = %s", (database,))
        if cur.fetchone() is not None:
            logger.info("Database %s already exists", database)
            return False
        cur.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(database)))
    logger.info("Created database %s", database)
    return True


def reset_schema(db_url: str) -> None:
    """Drop every chat and payment table by recreating the public schema."""
    with psycopg.connect(to_libpq_url(db_url), autocommit=True) as conn, conn.cursor() as cur:
        cur.execute("DROP SCHEMA IF EXISTS public CASCADE")
        cur.execute("CREATE SCHEMA public")
    logger.warning("Reset public schema")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ensure or reset the configured database")
    parser.add_argument("--url", default=None, help="Override the database URL")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop all tables after ensuring the database exists",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="[ensure_db] %(levelname)s %(message)s")

    url = args.url or settings.effective_database_url
    if not is_postgres_url(url):
        logger.info("Non-Postgres URL configured; nothing to ensure")
        return 0
    try:
        ensure_database_exists(url)
        if args.reset:
            reset_schema(url)
    except (psycopg.Error, ValueError) as exc:
        logger.error("Database setup failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
