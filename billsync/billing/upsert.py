from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from billsync.billing.errors import ConfigurationError

def _insert_for(db: Session, table: sa.Table):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise ConfigurationError(f"upsert not supported on {dialect}")

def upsert(
    db: Session,
    model: Any,
    key: str,
    values: dict[str, Any],
    update_columns: Iterable[str],
    version_column: str | None = None,
    terminal_status: str | None = None,
) -> bool:
    """INSERT ... ON CONFLICT (key) DO UPDATE as a single statement.

    With ``version_column`` the update only lands when the stored version is
    null or not newer than the incoming one. With ``terminal_status`` a row in
    that status only accepts updates that keep it there. Returns False when an
    existing row was left untouched.
    """
    table = model.__table__
    stmt = _insert_for(db, table).values(**values)

    set_ = {name: stmt.excluded[name] for name in update_columns}
    if "updated_at" in table.c:
        set_["updated_at"] = sa.func.now()

    guards = []
    if version_column is not None and values.get(version_column) is not None:
        current = table.c[version_column]
        guards.append(sa.or_(current.is_(None), current <= stmt.excluded[version_column]))
    if terminal_status is not None:
        guards.append(sa.or_(table.c.status != terminal_status, stmt.excluded.status == terminal_status))

    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c[key]],
        set_=set_,
        where=sa.and_(*guards) if guards else None,
    ).returning(table.c.id)

    return db.execute(stmt).scalar_one_or_none() is not None
