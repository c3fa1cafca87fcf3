# src/remit_chat/scripts/migrate.py
from __future__ import annotations

import logging
import os

from alembic import command
from alembic.config import Config

from remit_chat.core.settings import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))


def build_alembic_config() -> Config:
    """Return an Alembic config pointed at the project's migrations folder."""
    cfg = Config(os.path.join(PROJECT_ROOT, "migrations", "alembic.ini"))
    # Alembic runs synchronously, so hand it the psycopg URL.
    cfg.set_main_option("sqlalchemy.url", settings.database_url_sync)
    cfg.set_main_option("script_location", os.path.join(PROJECT_ROOT, "migrations"))
    return cfg


def run_upgrade_head() -> None:
    logger.info("Upgrading database schema to head")
    command.upgrade(build_alembic_config(), "head")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_upgrade_head()
