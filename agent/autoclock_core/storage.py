"""
Credential store — one file per key under the agent's data folder.

Only two keys are used in practice (constants.ACCESS_TOKEN_KEY and
constants.REFRESH_TOKEN_KEY). They are overwritten in place on every
refresh; no new keys are ever created for rotated tokens.
"""

import os
from pathlib import Path

from .config import log
from .constants import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY
from .errors import StorageError, ValidationError

_INVALID_KEY_CHARS = set('/\\<>:"|?*')
_SUFFIX = ".cred"


def validate_storage_key(key):
    if not key:
        raise ValidationError("key", "Storage key cannot be empty")
    if len(key) > 100:
        raise ValidationError("key", "Storage key too long")
    if any(c in _INVALID_KEY_CHARS or not c.isprintable() for c in key):
        raise ValidationError("key", "Storage key contains invalid characters")


class FileCredentialStore:
    """Key/value store backed by small files. Writes go through os.replace."""

    def __init__(self, directory):
        self._dir = Path(directory)

    def _path(self, key):
        validate_storage_key(key)
        return self._dir / f"{key}{_SUFFIX}"

    def get(self, key):
        path = self._path(key)
        try:
            if not path.exists():
                return None
            value = path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        return value or None

    def put(self, key, value):
        if not value:
            raise ValidationError("value", "Stored value cannot be empty")
        path = self._path(key)
        tmp = path.with_suffix(_SUFFIX + ".tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f"Failed to store {key}: {e}") from e
        return True

    def delete(self, key):
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e
        return True

    def list_keys(self):
        if not self._dir.exists():
            return []
        return sorted(p.name[:-len(_SUFFIX)] for p in self._dir.iterdir() if p.name.endswith(_SUFFIX))


def save_initial_tokens(store, refresh_token, access_token):
    """Store both tokens during first-time setup."""
    store.put(REFRESH_TOKEN_KEY, refresh_token)
    store.put(ACCESS_TOKEN_KEY, access_token)
    log.info("Initial tokens saved")


def clear_tokens(store):
    store.delete(ACCESS_TOKEN_KEY)
    store.delete(REFRESH_TOKEN_KEY)
    log.info("Stored tokens cleared")
