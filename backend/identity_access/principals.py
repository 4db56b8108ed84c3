"""Principal resolution: token subject → request-scoped Identity."""
from __future__ import annotations

import logging

from .domain import Identity, OperableState
from .errors import PrincipalNotFound, PrincipalSuspended
from .stores import PrincipalStoreProtocol


logger = logging.getLogger("schoolhub.identity_access")


class PrincipalResolver:
    def __init__(self, store: PrincipalStoreProtocol) -> None:
        self._store = store

    def resolve(self, principal_id: str) -> Identity:
        """Load the principal and return an Identity snapshot.

        Only `active` principals produce an Identity; `pending` and
        `suspended` accounts stop here with PrincipalSuspended.
        """
        principal = self._store.get_principal(principal_id)
        if principal is None:
            # Logged distinctly; surfaced to the client like a bad token.
            logger.info("Principal lookup failed: unknown principal")
            raise PrincipalNotFound()
        if principal.state is not OperableState.ACTIVE:
            logger.info("Principal rejected: state=%s", principal.state.value)
            raise PrincipalSuspended()
        return Identity.from_principal(principal)


__all__ = ["PrincipalResolver"]
