"""
Store wiring for the web adapter: settings, principal store, fees repo and
upload storage.

Why:
    Routes and the auth middleware need the same store instances. Keeping the
    (lazy) construction here avoids import-time DB checks in tests and lets
    tests swap implementations with the `set_*` helpers.

Behavior:
    - STORE_BACKEND=db prefers the psycopg-backed stores. Outside production
      a failure to build them degrades to the in-memory stores with a
      warning; in production-like environments the error propagates.
"""
from __future__ import annotations

import logging
from typing import Optional

from fees.repo_memory import InMemoryFeesRepo
from identity_access.stores import PrincipalStore, PrincipalStoreProtocol
from storage.uploads import LocalUploadStorage

from web.config import AppSettings, load_settings


logger = logging.getLogger("schoolhub.web")

_SETTINGS: Optional[AppSettings] = None
_PRINCIPAL_STORE: Optional[PrincipalStoreProtocol] = None
_FEES_REPO = None
_UPLOAD_STORAGE: Optional[LocalUploadStorage] = None


def get_settings() -> AppSettings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = load_settings()
    return _SETTINGS


def set_settings(settings: AppSettings) -> None:
    """Allow tests to inject settings (e.g., assignment modes)."""
    global _SETTINGS
    _SETTINGS = settings


def _build_principal_store() -> PrincipalStoreProtocol:
    settings = get_settings()
    if settings.store_backend != "db":
        return PrincipalStore()
    try:
        from identity_access.stores_db import DBPrincipalStore

        return DBPrincipalStore(dsn=settings.database_url or None)
    except Exception as exc:
        if settings.is_prod_like:
            raise
        logger.warning("Principal store unavailable (%s); using in-memory fallback", exc.__class__.__name__)
        return PrincipalStore()


def _build_fees_repo():
    settings = get_settings()
    if settings.store_backend != "db":
        return InMemoryFeesRepo()
    try:
        from fees.repo_db import DBFeesRepo

        return DBFeesRepo(dsn=settings.database_url or None)
    except Exception as exc:
        if settings.is_prod_like:
            raise
        logger.warning("Fees repo unavailable (%s); using in-memory fallback", exc.__class__.__name__)
        return InMemoryFeesRepo()


def get_principal_store() -> PrincipalStoreProtocol:
    global _PRINCIPAL_STORE
    if _PRINCIPAL_STORE is None:
        _PRINCIPAL_STORE = _build_principal_store()
    return _PRINCIPAL_STORE


def set_principal_store(store: PrincipalStoreProtocol) -> None:
    global _PRINCIPAL_STORE
    _PRINCIPAL_STORE = store


def get_fees_repo():
    global _FEES_REPO
    if _FEES_REPO is None:
        _FEES_REPO = _build_fees_repo()
    return _FEES_REPO


def set_fees_repo(repo) -> None:
    """Allow tests to swap the fees repository implementation."""
    global _FEES_REPO
    _FEES_REPO = repo


def get_upload_storage() -> LocalUploadStorage:
    global _UPLOAD_STORAGE
    if _UPLOAD_STORAGE is None:
        _UPLOAD_STORAGE = LocalUploadStorage(get_settings().uploads_root)
    return _UPLOAD_STORAGE


def set_upload_storage(storage: LocalUploadStorage) -> None:
    global _UPLOAD_STORAGE
    _UPLOAD_STORAGE = storage


__all__ = [
    "get_fees_repo",
    "get_principal_store",
    "get_settings",
    "get_upload_storage",
    "set_fees_repo",
    "set_principal_store",
    "set_settings",
    "set_upload_storage",
]
