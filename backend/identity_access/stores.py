"""
In-memory principal store for development and tests.

Why: Keep the resolver independent of the persistence technology. For
production, use `stores_db.DBPrincipalStore` (Postgres via psycopg3).
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from .domain import Principal


class PrincipalStoreProtocol(Protocol):
    def get_principal(self, principal_id: str) -> Optional[Principal]:
        ...

    def get_principals(self, principal_ids: Sequence[str]) -> List[Principal]:
        ...


class PrincipalStore:
    def __init__(self, principals: Iterable[Principal] = ()) -> None:
        self._data: Dict[str, Principal] = {}
        for p in principals:
            self.add(p)

    def add(self, principal: Principal) -> Principal:
        self._data[principal.id] = principal
        return principal

    def get_principal(self, principal_id: str) -> Optional[Principal]:
        return self._data.get(principal_id)

    def get_principals(self, principal_ids: Sequence[str]) -> List[Principal]:
        """Return the known principals in the order requested; unknown ids are dropped."""
        out: List[Principal] = []
        seen: set[str] = set()
        for pid in principal_ids:
            if pid in seen:
                continue
            seen.add(pid)
            rec = self._data.get(pid)
            if rec is not None:
                out.append(rec)
        return out


__all__ = ["PrincipalStore", "PrincipalStoreProtocol"]
