"""
Database-backed principal store for production use (Postgres).

Why: The in-memory store is not durable and does not scale across instances.
This store reads principals from Postgres while keeping the resolver
independent of the driver.

Security:
- Read-only: registration, approval and suspension workflows own writes.
- The table identifier is validated once and composed with `psycopg.sql`.

Note: This module uses psycopg3. It is imported only when enabled via
`STORE_BACKEND=db`. Tests continue to use the in-memory store.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple
import os
import re

try:
    import psycopg
    from psycopg import sql
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    sql = None  # type: ignore
    HAVE_PSYCOPG = False

from .domain import Principal, parse_role, parse_state


_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


def _row_to_principal(row: Tuple) -> Principal:
    return Principal(
        id=str(row[0]),
        role=parse_role(row[1]),
        state=parse_state(row[2]),
        first_name=row[3] or "",
        last_name=row[4] or "",
        email=row[5] or "",
        class_ids=tuple(str(c) for c in (row[6] or [])),
    )


class DBPrincipalStore:
    """Postgres-backed principal lookups.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string.
    table:
        Fully qualified table name. Defaults to `public.principals`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.principals") -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBPrincipalStore")
        self._dsn = dsn or os.getenv("DATABASE_URL", "")
        if not self._dsn:
            raise RuntimeError("No database DSN provided for DBPrincipalStore")
        if not _TABLE_RE.match(table or ""):
            raise ValueError("Invalid table name")
        self._table = table

    def _identifier(self):
        if "." in self._table:
            schema, name = self._table.split(".", 1)
        else:
            schema, name = "public", self._table
        return sql.Identifier(schema, name)

    def _select(self, where: str):
        return sql.SQL(
            "select id::text, role, status, first_name, last_name, email, class_ids "
            "from {} where " + where
        ).format(self._identifier())

    def get_principal(self, principal_id: str) -> Optional[Principal]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(self._select("id::text = %s"), (principal_id,))
                row = cur.fetchone()
        return _row_to_principal(row) if row else None

    def get_principals(self, principal_ids: Sequence[str]) -> List[Principal]:
        ids = list(dict.fromkeys(str(p) for p in principal_ids))
        if not ids:
            return []
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(self._select("id::text = any(%s)"), (ids,))
                rows = cur.fetchall()
        by_id = {str(r[0]): _row_to_principal(r) for r in rows}
        return [by_id[pid] for pid in ids if pid in by_id]


__all__ = ["DBPrincipalStore", "HAVE_PSYCOPG"]
