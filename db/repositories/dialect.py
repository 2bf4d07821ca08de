"""
Dialect-aware INSERT construction for insert-if-absent writes.

PostgreSQL and SQLite both provide ``ON CONFLICT DO NOTHING ... RETURNING``;
the repositories use it so that a uniqueness collision is reported as a
normal outcome instead of an IntegrityError.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from db.repositories.errors import UnsupportedDialectError


def conflict_insert(session: Session, model: type[Any]) -> Any:
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(model)
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    raise UnsupportedDialectError(f"Conditional inserts are not supported on '{dialect_name}'.")
