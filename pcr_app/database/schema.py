"""
Schema reconciliation run once at startup.

Production only creates missing tables.  Every other mode also adds columns
that exist on the models but not yet in the database, so a developer's local
database follows model changes without a migration step.  Nothing is ever
dropped or retyped.
"""

from __future__ import annotations

import logging
from typing import List

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.schema import CreateColumn

from pcr_app.database.models import Base

logger = logging.getLogger(__name__)


def sync_schema(engine: Engine, *, alter: bool) -> List[str]:
    """Create missing tables and, when *alter* is set, missing columns.

    Returns the list of ``table.column`` names that were added.
    """
    Base.metadata.create_all(engine)
    if not alter:
        return []

    added: list[str] = []
    inspector = inspect(engine)

    with engine.begin() as conn:
        for table in Base.metadata.sorted_tables:
            existing = {col["name"] for col in inspector.get_columns(table.name)}
            for column in table.columns:
                if column.name in existing:
                    continue
                if column.primary_key:
                    logger.warning(f"Cannot add primary key column {table.name}.{column.name}; skipping")
                    continue

                ddl_text = str(CreateColumn(column).compile(dialect=engine.dialect))
                if column.server_default is None:
                    # Existing rows have no value for the new column.
                    ddl_text = ddl_text.replace(" NOT NULL", "")
                conn.execute(text(f"ALTER TABLE {table.name} ADD COLUMN {ddl_text}"))
                added.append(f"{table.name}.{column.name}")
                logger.info(f"Migration: added {column.name} column to {table.name}")

    return added
