"""Cache-aside repository base for REST resources of the LMS API."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from lms_data.cache.manager import Cache
from lms_data.clients.http import HttpClient
from lms_data.clients.interceptors import to_base36
from lms_data.clients.resilience import NotFoundError
from lms_data.errors import AppError, CacheError, ErrorHandler
from lms_data.models.http import HttpResponse
from lms_data.models.query import QueryParams
from lms_data.models.result import Result, failure, success

logger = logging.getLogger(__name__)

T = TypeVar("T")
CreateT = TypeVar("CreateT")
UpdateT = TypeVar("UpdateT")

ID = str | int


def rolling_hash(text: str) -> str:
    """32-bit ``h * 31 + c`` hash over UTF-16 code units, as base36 of its magnitude.

    Keys written by other clients of the same cache use this hash, so the
    wraparound and code-unit iteration must not change.
    """
    h = 0
    raw = text.encode("utf-16-le")
    for i in range(0, len(raw), 2):
        h = ((h << 5) - h + int.from_bytes(raw[i:i + 2], "little")) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return to_base36(abs(h))


def scoped_params(scope: dict[str, Any], params: QueryParams | None) -> dict[str, Any]:
    """Cache-key params for a filtered list: the scope plus any non-default query."""
    extra = params.cache_params() if params else None
    return {**scope, **(extra or {})}


class BaseRepository(Generic[T, CreateT, UpdateT]):
    """CRUD access to one REST resource with a read-through cache.

    Subclasses set ``endpoint`` and ``entity_name`` and may override
    ``cache_ttl`` and the lifecycle hooks. Reads go through the cache and
    concurrent misses on the same key share one request. Writes always hit
    the API and then invalidate the entity's list keys (``list_operations``,
    any params) and the keys of ``id_scoped_operations`` for the written id.

    No method raises for API or cache failures; each returns a ``Result``.

    Args:
        http_client: Client used for every request.
        cache: Optional cache. Without it every read goes to the API.
        error_handler: Normaliser for failures. A fresh one by default.
    """

    endpoint: ClassVar[str] = ""
    entity_name: ClassVar[str] = ""
    cache_ttl: ClassVar[float] = 300.0
    id_scoped_operations: ClassVar[tuple[str, ...]] = ("byId",)
    list_operations: ClassVar[tuple[str, ...]] = ("all", "count")

    def __init__(
        self,
        http_client: HttpClient,
        cache: Cache | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self.http_client = http_client
        self.cache = cache
        self.error_handler = error_handler or ErrorHandler()
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_all(self, params: QueryParams | None = None) -> Result[Any]:
        logger.info("Fetching all %s", self.entity_name)
        return await self.cached_query(
            "all",
            params.cache_params() if params else None,
            self.endpoint,
            params.to_query() if params else None,
        )

    async def get_by_id(self, id: ID) -> Result[T]:
        logger.info("Fetching %s %s", self.entity_name, id)
        return await self.cached_query("byId", {"id": id}, f"{self.endpoint}/{id}")

    async def exists(self, id: ID) -> Result[bool]:
        """Check existence via ``{endpoint}/{id}/exists``; a 404 means False."""
        try:
            await self.http_client.get(f"{self.endpoint}/{id}/exists")
        except NotFoundError:
            return success(False)
        except Exception as exc:
            return failure(self._handle(exc, "exists"))
        return success(True)

    async def count(self, filters: dict[str, Any] | None = None) -> Result[int]:
        result = await self.cached_query(
            "count", filters or None, f"{self.endpoint}/count", filters,
        )
        if not result.success:
            return result
        try:
            return success(int(result.data["count"]))
        except (KeyError, TypeError, ValueError) as exc:
            return failure(self._handle(exc, "count"))

    async def cached_query(
        self,
        operation: str,
        key_params: dict[str, Any] | None,
        path: str,
        params: dict[str, Any] | None = None,
        ttl: float | None = None,
    ) -> Result[Any]:
        """GET *path* through the cache under ``entity:operation[:hash]``.

        Only successful responses are cached. Concurrent callers with the
        same key share a single request.
        """
        key = self.get_cache_key(operation, key_params)
        cached = await self._cache_get(key)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            return success(cached)

        async def load() -> Any:
            response = await self.http_client.get(path, params=params)
            await self._cache_set(key, response.data, ttl if ttl is not None else self.cache_ttl)
            return response.data

        try:
            return success(await self._single_flight(key, load))
        except Exception as exc:
            return failure(self._handle(exc, operation))

    async def fetch(self, action: str, path: str, params: dict[str, Any] | None = None) -> Result[Any]:
        """GET *path* bypassing the cache."""
        try:
            response = await self.http_client.get(path, params=params)
        except Exception as exc:
            return failure(self._handle(exc, action))
        return success(response.data)

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    async def create(self, data: CreateT) -> Result[T]:
        logger.info("Creating %s", self.entity_name)
        try:
            data = await self.before_create(data)
            response = await self.http_client.post(self.endpoint, self._payload(data))
        except Exception as exc:
            return failure(self._handle(exc, "create"))
        await self.invalidate_cache()
        try:
            return success(await self.after_create(response.data))
        except Exception as exc:
            return failure(self._handle(exc, "create"))

    async def update(self, id: ID, data: UpdateT) -> Result[T]:
        logger.info("Updating %s %s", self.entity_name, id)
        try:
            data = await self.before_update(id, data)
            response = await self.http_client.put(f"{self.endpoint}/{id}", self._payload(data))
        except Exception as exc:
            return failure(self._handle(exc, "update"))
        await self.invalidate_cache(id)
        try:
            return success(await self.after_update(response.data))
        except Exception as exc:
            return failure(self._handle(exc, "update"))

    async def delete(self, id: ID) -> Result[None]:
        logger.info("Deleting %s %s", self.entity_name, id)
        try:
            await self.before_delete(id)
            await self.http_client.delete(f"{self.endpoint}/{id}")
        except Exception as exc:
            return failure(self._handle(exc, "delete"))
        await self.invalidate_cache(id)
        try:
            await self.after_delete(id)
        except Exception as exc:
            return failure(self._handle(exc, "delete"))
        return success(None)

    async def mutate(
        self,
        action: str,
        send: Callable[[], Awaitable[HttpResponse]],
        ids: Iterable[ID] = (),
    ) -> Result[Any]:
        """Run a custom write and invalidate the cache once it succeeds.

        With *ids*, each id's scoped entries are dropped along with the list
        entries; without, only the list entries are.
        """
        try:
            response = await send()
        except Exception as exc:
            return failure(self._handle(exc, action))
        targets = list(ids)
        if targets:
            for id in targets:
                await self.invalidate_cache(id)
        else:
            await self.invalidate_cache()
        return success(response.data)

    # ------------------------------------------------------------------ #
    # Lifecycle hooks
    # ------------------------------------------------------------------ #

    async def before_create(self, data: CreateT) -> CreateT:
        return data

    async def after_create(self, entity: T) -> T:
        return entity

    async def before_update(self, id: ID, data: UpdateT) -> UpdateT:
        return data

    async def after_update(self, entity: T) -> T:
        return entity

    async def before_delete(self, id: ID) -> None:
        return None

    async def after_delete(self, id: ID) -> None:
        return None

    # ------------------------------------------------------------------ #
    # Cache keys & invalidation
    # ------------------------------------------------------------------ #

    def get_cache_key(self, operation: str, params: dict[str, Any] | None = None) -> str:
        base = f"{self.entity_name}:{operation}"
        if not params:
            return base
        return f"{base}:{self._hash_params(params)}"

    def _hash_params(self, params: dict[str, Any]) -> str:
        text = json.dumps(params, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
        return rolling_hash(text)

    async def invalidate_cache(self, id: ID | None = None) -> None:
        """Drop every ``list_operations`` entry, plus everything scoped to *id* if given.

        Failures are logged; a stale entry only lives until its TTL.
        """
        if self.cache is None:
            return
        name = self.entity_name
        try:
            for operation in self.list_operations:
                await self.cache.delete(f"{name}:{operation}")
                await self.cache.delete_pattern(f"{name}:{operation}:*")
            if id is not None:
                await self.cache.delete_pattern(f"{name}:byId:*{id}*")
                for operation in self.id_scoped_operations:
                    await self.cache.delete(self.get_cache_key(operation, {"id": id}))
        except CacheError:
            logger.warning("Failed to invalidate %s cache (id=%s)", name, id, exc_info=True)
            return
        logger.debug("Invalidated %s cache (id=%s)", name, id)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _single_flight(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(fetch())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug("Joining in-flight request: %s", key)
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _cache_get(self, key: str) -> Any | None:
        if self.cache is None:
            return None
        try:
            return await self.cache.get(key)
        except CacheError:
            logger.warning("Cache read failed for %s, treating as miss", key, exc_info=True)
            return None

    async def _cache_set(self, key: str, value: Any, ttl: float) -> None:
        if self.cache is None or value is None:
            return
        try:
            await self.cache.set(key, value, ttl)
        except CacheError:
            logger.warning("Cache write failed for %s", key, exc_info=True)

    @staticmethod
    def _payload(data: Any) -> Any:
        if isinstance(data, BaseModel):
            return data.model_dump(mode="json", exclude_none=True)
        return data

    def _handle(self, error: Exception, action: str) -> AppError:
        return self.error_handler.handle(
            error, {"component": f"{self.entity_name}Repository", "action": action},
        )
