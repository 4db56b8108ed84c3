"""
Postgres-backed repository for fees (templates, groups, obligations).

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection.
- `create_obligations` runs every insert on one connection inside a single
  transaction: psycopg commits when the block exits cleanly and rolls back
  on any exception, so the batch is all-or-nothing.
- `create_obligation` commits each record on its own (sequential mode).

Schema: see `fees/schema.sql`.
"""
from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple
import os

try:
    import psycopg
    from psycopg import sql
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    sql = None  # type: ignore
    HAVE_PSYCOPG = False

from fees.domain import Group, Obligation, ObligationDraft, ObligationStatus, ObligationTemplate


def _dsn() -> str:
    for candidate in (os.getenv("FEES_DATABASE_URL"), os.getenv("DATABASE_URL")):
        if candidate:
            return candidate
    raise RuntimeError("Database DSN unavailable for DBFeesRepo")


_TEMPLATE_COLUMNS = "id::text, name, amount, currency, description, frequency, category, status, created_by"

_OBLIGATION_COLUMNS = (
    "id::text, student_id, class_id, fee_structure_id::text, amount, currency, "
    "due_date, status, idempotency_key, created_at"
)

_INSERT_OBLIGATION = (
    "insert into public.student_fees "
    "(student_id, class_id, fee_structure_id, amount, currency, due_date, status, idempotency_key) "
    "values (%s, %s, %s::uuid, %s, %s, %s, %s, %s) "
    f"returning {_OBLIGATION_COLUMNS}"
)

# Columns that update_template may touch; anything else is a programming error.
_TEMPLATE_UPDATABLE = ("name", "amount", "currency", "description", "frequency", "category", "status")


def _template_row(row: Tuple) -> ObligationTemplate:
    return ObligationTemplate(
        id=row[0],
        name=row[1],
        amount=row[2],
        currency=row[3],
        description=row[4],
        frequency=row[5],
        category=row[6],
        status=row[7],
        created_by=row[8],
    )


def _obligation_row(row: Tuple) -> Obligation:
    return Obligation(
        id=row[0],
        student_id=row[1],
        class_id=row[2],
        template_id=row[3],
        amount=row[4],
        currency=row[5],
        due_date=row[6],
        status=ObligationStatus(row[7]),
        idempotency_key=row[8],
        created_at=row[9],
    )


def _draft_params(d: ObligationDraft) -> tuple:
    return (
        d.student_id,
        d.class_id,
        d.template_id,
        d.amount,
        d.currency,
        d.due_date,
        d.status.value,
        d.idempotency_key,
    )


class DBFeesRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBFeesRepo")
        self._dsn = dsn or _dsn()

    # --- Templates -------------------------------------------------------------
    def list_templates(self) -> List[ObligationTemplate]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_TEMPLATE_COLUMNS} from public.fee_structures order by created_at, name")
                return [_template_row(r) for r in cur.fetchall()]

    def get_template(self, template_id: str) -> Optional[ObligationTemplate]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_TEMPLATE_COLUMNS} from public.fee_structures where id::text = %s",
                    (template_id,),
                )
                row = cur.fetchone()
        return _template_row(row) if row else None

    def find_template_by_name(self, name: str) -> Optional[ObligationTemplate]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_TEMPLATE_COLUMNS} from public.fee_structures where name = %s", (name,))
                row = cur.fetchone()
        return _template_row(row) if row else None

    def create_template(self, **fields: Any) -> ObligationTemplate:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    insert into public.fee_structures
                        (name, amount, currency, description, frequency, category, created_by)
                    values (%s, %s, %s, %s, %s, %s, %s)
                    returning """
                    + _TEMPLATE_COLUMNS,
                    (
                        fields["name"],
                        fields["amount"],
                        fields.get("currency", "LKR"),
                        fields.get("description"),
                        fields.get("frequency", "monthly"),
                        fields.get("category", "tuition"),
                        fields.get("created_by"),
                    ),
                )
                row = cur.fetchone()
        return _template_row(row)

    def update_template(self, template_id: str, **fields: Any) -> Optional[ObligationTemplate]:
        unknown = set(fields) - set(_TEMPLATE_UPDATABLE)
        if unknown:
            raise ValueError(f"not updatable: {sorted(unknown)}")
        if not fields:
            return self.get_template(template_id)
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(col)) for col in fields
        )
        stmt = sql.SQL(
            "update public.fee_structures set {}, updated_at = now() where id::text = %s returning "
            + _TEMPLATE_COLUMNS
        ).format(assignments)
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, (*fields.values(), template_id))
                row = cur.fetchone()
        return _template_row(row) if row else None

    def delete_template(self, template_id: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.fee_structures where id::text = %s", (template_id,))
                return cur.rowcount > 0

    def template_in_use(self, template_id: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select exists(select 1 from public.student_fees where fee_structure_id::text = %s)",
                    (template_id,),
                )
                row = cur.fetchone()
        return bool(row and row[0])

    # --- Groups ----------------------------------------------------------------
    def _groups(self, where: str, params: tuple) -> List[Group]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select c.id,
                           c.title,
                           coalesce(array_agg(m.student_id order by m.position)
                                    filter (where m.student_id is not null), '{}')
                    from public.classes c
                    left join public.class_members m on m.class_id = c.id
                    """
                    + where
                    + " group by c.id, c.title order by c.id",
                    params,
                )
                rows = cur.fetchall()
        return [Group(id=r[0], title=r[1], member_ids=tuple(r[2] or ())) for r in rows]

    def get_groups(self, group_ids: Sequence[str]) -> List[Group]:
        ids = list(dict.fromkeys(str(g) for g in group_ids))
        if not ids:
            return []
        by_id = {g.id: g for g in self._groups("where c.id = any(%s)", (ids,))}
        return [by_id[gid] for gid in ids if gid in by_id]

    def list_groups(self) -> List[Group]:
        return self._groups("", ())

    # --- Obligations -----------------------------------------------------------
    def create_obligation(self, draft: ObligationDraft) -> Obligation:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(_INSERT_OBLIGATION, _draft_params(draft))
                row = cur.fetchone()
        return _obligation_row(row)

    def create_obligations(self, drafts: Sequence[ObligationDraft]) -> List[Obligation]:
        if not drafts:
            return []
        created: List[Obligation] = []
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                for draft in drafts:
                    cur.execute(_INSERT_OBLIGATION, _draft_params(draft))
                    created.append(_obligation_row(cur.fetchone()))
        return created

    def find_obligation_by_key(self, key: str) -> Optional[Obligation]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_OBLIGATION_COLUMNS} from public.student_fees "
                    "where idempotency_key = %s order by created_at limit 1",
                    (key,),
                )
                row = cur.fetchone()
        return _obligation_row(row) if row else None

    def list_obligations(
        self,
        *,
        student_id: Optional[str] = None,
        class_id: Optional[str] = None,
        status: Optional[ObligationStatus] = None,
    ) -> List[Obligation]:
        clauses: List[str] = []
        params: List[Any] = []
        if student_id is not None:
            clauses.append("student_id = %s")
            params.append(student_id)
        if class_id is not None:
            clauses.append("class_id = %s")
            params.append(class_id)
        if status is not None:
            clauses.append("status = %s")
            params.append(status.value)
        where = (" where " + " and ".join(clauses)) if clauses else ""
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_OBLIGATION_COLUMNS} from public.student_fees{where} order by created_at, id",
                    tuple(params),
                )
                return [_obligation_row(r) for r in cur.fetchall()]

    def update_obligation_status(self, obligation_id: str, status: ObligationStatus) -> Optional[Obligation]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"update public.student_fees set status = %s where id::text = %s returning {_OBLIGATION_COLUMNS}",
                    (status.value, obligation_id),
                )
                row = cur.fetchone()
        return _obligation_row(row) if row else None


__all__ = ["DBFeesRepo", "HAVE_PSYCOPG"]
