from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine

from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "role", "is_active"},
    "leave_requests": {
        "id",
        "employee_id",
        "start_date",
        "end_date",
        "duration",
        "status",
        "reviewed_by",
    },
    "notifications": {"id", "user_id", "notification_type", "related_request_id", "is_read"},
    "activity_logs": {"id", "action", "entity_id"},
}


def find_schema_gaps(connection: Connection) -> tuple[list[str], dict[str, list[str]]]:
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())
    missing_tables: list[str] = []
    missing_columns: dict[str, list[str]] = {}
    for table_name, columns in REQUIRED_COLUMNS.items():
        if table_name not in table_names:
            missing_tables.append(table_name)
            continue
        existing = {item["name"] for item in inspector.get_columns(table_name)}
        missing = sorted(columns - existing)
        if missing:
            missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_runtime_schema(bind: Engine | None = None) -> None:
    import app.models  # noqa: F401

    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    with target.connect() as connection:
        missing_tables, missing_columns = find_schema_gaps(connection)
    if missing_tables or missing_columns:
        logger.warning(
            "Database schema is behind the models (tables=%s, columns=%s); run `alembic upgrade head`.",
            missing_tables,
            missing_columns,
        )
    else:
        logger.info("Database schema verified")
