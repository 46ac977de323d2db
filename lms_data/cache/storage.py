"""Cache backed by a synchronous key/value store (the local/session storage strategies)."""

import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from lms_data.cache.memory import compile_pattern
from lms_data.errors import CacheError
from lms_data.models.cache import CacheEntry
from lms_data.storage.kv_store import KeyValueStore, StorageError

logger = logging.getLogger(__name__)


class StorageCache:
    """Serialise cache entries as JSON into a :class:`KeyValueStore`.

    Keys are namespaced with *prefix* so that several caches (and the auth
    token) can share one store. Values must be JSON-serialisable. Expiry is
    wall-clock based because entries may outlive the process.

    Raises:
        CacheError: From any method when the store fails or holds a corrupt
            record. Callers treat it as a miss.
    """

    def __init__(
        self,
        store: KeyValueStore,
        prefix: str = "app_cache_",
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.prefix = prefix
        self.default_ttl = default_ttl
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _own_keys(self) -> list[str]:
        try:
            return [k[len(self.prefix):] for k in self.store.keys() if k.startswith(self.prefix)]
        except StorageError as exc:
            raise CacheError(str(exc)) from exc

    def _read(self, key: str) -> CacheEntry[Any] | None:
        try:
            raw = self.store.get_item(self._key(key))
        except StorageError as exc:
            raise CacheError(str(exc)) from exc
        if raw is None:
            return None
        try:
            return CacheEntry[Any].model_validate_json(raw)
        except ValidationError as exc:
            raise CacheError(f"Corrupt cache record for {key}") from exc

    def _remove(self, key: str) -> None:
        try:
            self.store.remove_item(self._key(key))
        except StorageError as exc:
            raise CacheError(str(exc)) from exc

    async def get(self, key: str) -> Any | None:
        entry = self._read(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._remove(key)
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        now = self._clock()
        entry = CacheEntry[Any](
            value=value,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
            created_at=now,
            last_accessed=now,
        )
        try:
            self.store.set_item(self._key(key), entry.model_dump_json())
        except StorageError as exc:
            raise CacheError(str(exc)) from exc
        except ValueError as exc:
            raise CacheError(f"Value for {key} is not serialisable") from exc

    async def delete(self, key: str) -> None:
        self._remove(key)

    async def clear(self) -> None:
        for key in self._own_keys():
            self._remove(key)

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def delete_pattern(self, pattern: str) -> int:
        regex = compile_pattern(pattern)
        doomed = [key for key in self._own_keys() if regex.fullmatch(key)]
        for key in doomed:
            self._remove(key)
        return len(doomed)
