from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import engine as default_engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "role", "academic_class_id", "is_active"},
    "subjects": {"id", "name", "priority", "can_co_run", "is_solo"},
    "timetable_entries": {
        "id",
        "school_id",
        "term_id",
        "day_of_week",
        "period_id",
        "academic_class_id",
        "subject_id",
        "teacher_id",
        "room_id",
    },
    "timetable_revisions": {"school_id", "term_id", "version"},
}


def missing_schema_items(engine: Engine) -> tuple[list[str], dict[str, list[str]]]:
    with engine.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = sorted(name for name in REQUIRED_COLUMNS if name not in table_names)
        missing_columns: dict[str, list[str]] = {}
        for table_name, required in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing = sorted(required - existing)
            if missing:
                missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_runtime_schema(engine: Engine | None = None) -> None:
    target = engine or default_engine
    try:
        Base.metadata.create_all(bind=target)
        missing_tables, missing_columns = missing_schema_items(target)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema bootstrap failed")
        raise RuntimeError("Runtime schema bootstrap failed") from exc

    if missing_tables:
        raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
    if missing_columns:
        flat = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
        raise RuntimeError(f"Missing required columns: {', '.join(flat)}")
    logger.info("Timetable schema ready")
