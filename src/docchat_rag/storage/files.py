"""Local-disk storage for uploaded file bytes."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path

from docchat_rag.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class LocalFileStore:
    """Keeps each upload under ``<root>/<millis>-<name>``.

    Parameters
    ----------
    root:
        Directory holding the uploads; created if missing.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path.parent != self.root.resolve():
            raise ValidationError(f"Invalid storage key: {key!r}")
        return path

    def save(self, original_name: str, data: bytes) -> str:
        """Write *data* and return its storage key."""
        safe_name = _WHITESPACE.sub("_", Path(original_name).name) or "upload"
        key = f"{int(time.time() * 1000)}-{safe_name}"
        path = self._path(key)
        # Two uploads of the same name in the same millisecond.
        suffix = 1
        while path.exists():
            key = f"{int(time.time() * 1000)}-{suffix}-{safe_name}"
            path = self._path(key)
            suffix += 1
        path.write_bytes(data)
        logger.info("Stored upload %s (%d bytes)", key, len(data))
        return key

    def read(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError(f"Stored file {key!r} not found")
        return path.read_bytes()

    def delete(self, key: str) -> bool:
        """Remove the file; returns ``False`` (and logs) when it was already gone."""
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("Stored file %s already missing", key)
            return False
        logger.info("Deleted stored file %s", key)
        return True
