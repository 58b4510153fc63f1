"""JSON file store for user tokens, keyed by platform subject id."""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

from pydantic import ValidationError

from lark_user_auth.core.errors import StoreReadError
from lark_user_auth.models.token import DEFAULT_STORAGE_KEY, TokenRecord

logger = logging.getLogger(__name__)


class CredentialStore:
    """Whole-file key-value store mapping storage keys to token records.

    Every write rewrites the full mapping through a temporary file and an
    atomic rename, so a crash mid-write never leaves a truncated file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_raw(self) -> Dict[str, dict]:
        """Return the raw mapping; raise ``StoreReadError`` when unreadable."""
        if not self._path.exists():
            return {}
        try:
            content = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreReadError(f"Failed to read token file {self._path}: {exc}") from exc
        if not isinstance(content, dict):
            raise StoreReadError(f"Token file {self._path} does not contain an object.")
        return content

    def _dump_raw(self, tokens: Dict[str, dict]) -> None:
        directory = self._path.parent
        directory.mkdir(mode=stat.S_IRWXU, parents=True, exist_ok=True)
        os.chmod(directory, stat.S_IRWXU)

        fd, temp_name = tempfile.mkstemp(
            dir=directory, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(tokens, handle, indent=2)
            os.chmod(temp_name, stat.S_IRUSR | stat.S_IWUSR)
            os.replace(temp_name, self._path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def read(self, key: Optional[str] = None) -> Optional[TokenRecord]:
        """Return the record stored under ``key``, or None if none is usable."""
        storage_key = key or DEFAULT_STORAGE_KEY
        try:
            raw = self._load_raw().get(storage_key)
        except StoreReadError as exc:
            logger.warning("%s; treating as no stored credential.", exc)
            return None
        if raw is None:
            return None
        try:
            return TokenRecord.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring malformed token record %r: %s", storage_key, exc)
            return None

    def read_all(self) -> Dict[str, TokenRecord]:
        """Return every well-formed record in the file."""
        try:
            raw = self._load_raw()
        except StoreReadError as exc:
            logger.warning("%s; treating as empty.", exc)
            return {}
        records: Dict[str, TokenRecord] = {}
        for storage_key, item in raw.items():
            try:
                records[storage_key] = TokenRecord.model_validate(item)
            except ValidationError:
                logger.warning("Skipping malformed token record %r.", storage_key)
        return records

    def find(self, user_id: Optional[str] = None) -> Optional[Tuple[str, TokenRecord]]:
        """Locate the current credential and the key it is stored under.

        An explicit ``user_id`` is looked up directly. Otherwise the record
        expiring last wins, which is the most recent authorization; on equal
        expiry the default key is preferred, then the greatest key.
        """
        if user_id:
            record = self.read(user_id)
            return (user_id, record) if record else None
        records = self.read_all()
        if not records:
            return None
        return max(
            records.items(),
            key=lambda item: (
                item[1].expires_at,
                item[0] == DEFAULT_STORAGE_KEY,
                item[0],
            ),
        )

    def write(self, key: Optional[str], record: TokenRecord) -> None:
        """Store ``record`` under ``key``, preserving every other key."""
        storage_key = key or DEFAULT_STORAGE_KEY
        with self._lock:
            try:
                tokens = self._load_raw()
            except StoreReadError as exc:
                logger.warning("%s; a new file will be written.", exc)
                tokens = {}
            tokens[storage_key] = record.to_storage()
            self._dump_raw(tokens)
        logger.debug("Stored token for key %r in %s", storage_key, self._path)

    def delete(self, key: Optional[str] = None) -> None:
        """Remove one key. Missing keys and missing files are ignored."""
        storage_key = key or DEFAULT_STORAGE_KEY
        with self._lock:
            try:
                tokens = self._load_raw()
            except StoreReadError as exc:
                logger.warning("%s; nothing to delete.", exc)
                return
            if tokens.pop(storage_key, None) is None:
                return
            self._dump_raw(tokens)

    def delete_all(self) -> None:
        """Remove the backing file entirely."""
        with self._lock:
            self._path.unlink(missing_ok=True)
        logger.info("Removed token file %s", self._path)


__all__ = ["CredentialStore"]
