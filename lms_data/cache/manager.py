"""Named cache registry choosing a backend per logical cache name."""

import logging
from typing import Any, Protocol

from lms_data.cache.memory import MemoryCache
from lms_data.cache.storage import StorageCache
from lms_data.errors import CacheError
from lms_data.models.cache import CacheConfig
from lms_data.models.enums import CacheStrategy
from lms_data.storage.kv_store import KeyValueStore, SessionStore

logger = logging.getLogger(__name__)


class Cache(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> None: ...

    async def has(self, key: str) -> bool: ...

    async def delete_pattern(self, pattern: str) -> int: ...


class CacheManager:
    """Registry of named caches.

    Callers ask for a logical name (``"video_courses"``) and get whichever
    backend that name was first configured with. The first ``get_cache``
    call for a name fixes its config; later configs are ignored.

    Args:
        default_config: Config used when ``get_cache`` is given none.
        local_store: Persistent store behind the ``localStorage`` strategy.
        session_store: Store behind the ``sessionStorage`` strategy.
    """

    def __init__(
        self,
        default_config: CacheConfig | None = None,
        local_store: KeyValueStore | None = None,
        session_store: KeyValueStore | None = None,
    ) -> None:
        self.default_config = default_config or CacheConfig()
        self.local_store = local_store
        self.session_store = session_store or SessionStore()
        self._caches: dict[str, Cache] = {}

    def get_cache(
        self, name: str = "default", config: CacheConfig | dict[str, Any] | None = None,
    ) -> Cache:
        existing = self._caches.get(name)
        if existing is not None:
            return existing

        final = self._merge(config)
        cache = self._create(final)
        self._caches[name] = cache
        logger.info("Cache created: %s (strategy=%s)", name, final.strategy)
        return cache

    def get(self, name: str) -> Cache | None:
        return self._caches.get(name)

    def names(self) -> list[str]:
        return list(self._caches)

    def __contains__(self, name: object) -> bool:
        return name in self._caches

    def remove_cache(self, name: str) -> bool:
        cache = self._caches.pop(name, None)
        if cache is None:
            return False
        _destroy(cache)
        return True

    async def clear_all_caches(self) -> None:
        for name, cache in list(self._caches.items()):
            try:
                await cache.clear()
            except CacheError:
                logger.warning("Could not clear cache %s", name, exc_info=True)
            _destroy(cache)
            logger.debug("Cache removed: %s", name)
        self._caches.clear()
        logger.info("All caches cleared")

    def _merge(self, config: CacheConfig | dict[str, Any] | None) -> CacheConfig:
        if config is None:
            return self.default_config
        if isinstance(config, CacheConfig):
            return config
        return CacheConfig.model_validate({**self.default_config.model_dump(), **config})

    def _create(self, config: CacheConfig) -> Cache:
        if config.strategy == CacheStrategy.MEMORY:
            return self._memory(config)
        if config.strategy == CacheStrategy.LOCAL_STORAGE:
            if self.local_store is None:
                logger.warning("No persistent store configured for localStorage, falling back to memory")
                return self._memory(config)
            return StorageCache(self.local_store, config.prefix, config.default_ttl)
        if config.strategy == CacheStrategy.SESSION_STORAGE:
            return StorageCache(self.session_store, config.prefix, config.default_ttl)

        logger.warning("Unsupported cache strategy: %s, falling back to memory", config.strategy)
        return self._memory(config)

    @staticmethod
    def _memory(config: CacheConfig) -> MemoryCache:
        return MemoryCache(config.max_size, config.default_ttl, config.sweep_interval)


def _destroy(cache: Cache) -> None:
    destroy = getattr(cache, "destroy", None)
    if callable(destroy):
        destroy()
