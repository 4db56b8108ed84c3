"""
Local file storage for uploaded teaching materials.

Intent:
    Persist uploaded files beneath a configured root and hand back a public
    URL, after checking the file extension against the allow-list of the
    requested category. The category `other` accepts any extension.

Security:
    Stored names are `<millis>_<uuid hex>_<sanitized basename>`, so
    client-supplied paths can never escape the uploads root and two uploads
    of the same name in the same millisecond never share a file.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Optional
import logging
import os
import re
import time
from uuid import uuid4


_log = logging.getLogger("schoolhub.storage")

CATEGORY_EXTENSIONS: Dict[str, Optional[FrozenSet[str]]] = {
    "document": frozenset({".pdf", ".doc", ".docx", ".txt"}),
    "video": frozenset({".mp4", ".avi", ".mov", ".wmv"}),
    "image": frozenset({".jpg", ".jpeg", ".png", ".gif"}),
    "audio": frozenset({".mp3", ".wav", ".ogg"}),
    "other": None,
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class InvalidCategory(ValueError):
    def __init__(self, category: str) -> None:
        super().__init__(f"Invalid file type for {category}")
        self.category = category


@dataclass(frozen=True)
class IncomingFile:
    name: str
    body: bytes

    @property
    def size(self) -> int:
        return len(self.body)


@dataclass(frozen=True)
class StoredFile:
    url: str
    original_name: str
    size: int

    def to_public(self) -> dict:
        return {"url": self.url, "fileName": self.original_name, "fileSize": self.size}


def check_category(filename: str, category: str) -> None:
    """Raise InvalidCategory unless `filename` is acceptable for `category`."""
    if category not in CATEGORY_EXTENSIONS:
        raise InvalidCategory(category)
    allowed = CATEGORY_EXTENSIONS[category]
    if allowed is None:
        return
    if os.path.splitext(filename)[1].lower() not in allowed:
        raise InvalidCategory(category)


def _safe_name(filename: str) -> str:
    base = os.path.basename(filename.replace("\\", "/"))
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "upload"


class LocalUploadStorage:
    def __init__(self, root: str | os.PathLike, *, clock: Callable[[], float] = time.time) -> None:
        self._root = Path(root)
        self._clock = clock

    @property
    def root(self) -> Path:
        return self._root

    def store(self, file: IncomingFile, category: str) -> StoredFile:
        check_category(file.name, category)
        self._root.mkdir(parents=True, exist_ok=True)
        stored_name = f"{int(self._clock() * 1000)}_{uuid4().hex}_{_safe_name(file.name)}"
        target = self._root / stored_name
        with open(target, "xb") as fh:
            fh.write(file.body)
        _log.info("Stored upload category=%s size=%d", category, file.size)
        return StoredFile(url=f"/uploads/{stored_name}", original_name=file.name, size=file.size)


__all__ = [
    "CATEGORY_EXTENSIONS",
    "IncomingFile",
    "InvalidCategory",
    "LocalUploadStorage",
    "StoredFile",
    "check_category",
]
