from __future__ import annotations

import logging
import os
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from roundplay.db.engine import make_engine
from roundplay.models import Base

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _alembic_config() -> Config:
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    return alembic_cfg


def _has_revisions() -> bool:
    versions = PROJECT_ROOT / "alembic" / "versions"
    return versions.is_dir() and any(versions.glob("*.py"))


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations, or create the schema directly when none exist yet.

    A freshly created schema is stamped at ``head`` so later migrations
    apply on top of it.
    """
    alembic_cfg = _alembic_config()
    if _has_revisions():
        command.upgrade(alembic_cfg, target_revision)
        return
    logger.info("No Alembic revisions found; creating tables from metadata")
    Base.metadata.create_all(make_engine())
    command.stamp(alembic_cfg, "head")


def print_tables() -> None:
    """Inspect the configured database and print all table names."""
    engine = make_engine()
    insp = inspect(engine)
    print("Current tables:", ", ".join(sorted(insp.get_table_names())))


def main() -> None:
    """Apply migrations (default to head) and report the resulting schema."""
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    upgrade_db()
    print_tables()


if __name__ == "__main__":
    main()
