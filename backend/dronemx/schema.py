# backend/dronemx/schema.py
"""
Schema preflight: refuse to run against a database whose Alembic revision
is not the code's head revision.

Off by default; set SCHEMA_STRICT=1 (or true/yes) in deployed services.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import text

from .database import WRITE_DB_URL, WriteSessionLocal

logger = logging.getLogger(__name__)

ALEMBIC_DIR = Path(__file__).resolve().parent / "alembic"

_TRUTHY = {"1", "true", "yes", "on"}


def alembic_config() -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    cfg.set_main_option("sqlalchemy.url", WRITE_DB_URL or "")
    return cfg


def schema_strict() -> bool:
    return os.getenv("SCHEMA_STRICT", "0").strip().lower() in _TRUTHY


def enforce_schema_head_sync_if_configured() -> None:
    if not schema_strict():
        return

    heads = set(ScriptDirectory.from_config(alembic_config()).get_heads())
    db = WriteSessionLocal()
    try:
        current = {row[0] for row in db.execute(text("SELECT version_num FROM alembic_version")).fetchall()}
    finally:
        db.close()

    if current != heads:
        raise RuntimeError(
            "Database schema is out of date: "
            f"database at {sorted(current) or ['<none>']}, code expects {sorted(heads)}. "
            "Run `alembic upgrade head` first."
        )
    logger.info("Schema preflight passed", extra={"revisions": sorted(heads)})
