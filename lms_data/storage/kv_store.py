"""Synchronous key/value stores: Fernet-encrypted on disk, or in-memory per session."""

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "auth_token"


class StorageError(Exception):
    """The backing store could not be read or written."""


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class SessionStore:
    """Process-lifetime store; contents vanish with the process."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class EncryptedFileStore:
    """Encrypt and persist string values on disk.

    All items live in one Fernet-encrypted JSON document at
    ``directory / "store.enc"``; the key is at ``directory / ".key"``.
    Every call reads or rewrites the whole document, which suits the
    handful of items it holds (the auth token, small cache records).

    Args:
        directory: Directory for the key and the encrypted document.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)
        self._key_path = self.directory / ".key"
        self._data_path = self.directory / "store.enc"
        self._fernet: Fernet | None = None

    def _get_fernet(self) -> Fernet:
        """Return (and cache) the Fernet instance, generating a key if needed."""
        if self._fernet is not None:
            return self._fernet

        if self._key_path.exists():
            key = self._key_path.read_bytes()
        else:
            key = Fernet.generate_key()
            self._key_path.write_bytes(key)
        self._secure_path(self._key_path)
        self._fernet = Fernet(key)
        return self._fernet

    def _secure_path(self, path: Path) -> None:
        """Set restrictive permissions on a path.

        Directories get 0o700, files get 0o600.
        """
        try:
            if path.is_dir():
                os.chmod(path, 0o700)
            else:
                os.chmod(path, 0o600)
        except OSError:
            logger.debug("Could not set permissions on %s", path)

    def _load(self) -> dict[str, str]:
        if not self._data_path.exists():
            return {}
        try:
            decrypted = self._get_fernet().decrypt(self._data_path.read_bytes())
            return json.loads(decrypted)
        except (InvalidToken, ValueError) as exc:
            raise StorageError(f"Store at {self._data_path} is unreadable") from exc
        except OSError as exc:
            raise StorageError(f"Could not read {self._data_path}: {exc}") from exc

    def _save(self, items: dict[str, str]) -> None:
        try:
            encrypted = self._get_fernet().encrypt(json.dumps(items).encode())
            self._data_path.write_bytes(encrypted)
        except OSError as exc:
            raise StorageError(f"Could not write {self._data_path}: {exc}") from exc
        self._secure_path(self._data_path)
        self._secure_path(self.directory)

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if items.pop(key, None) is not None:
            self._save(items)
            logger.debug("Removed stored item %s", key)

    def keys(self) -> list[str]:
        return list(self._load())
