from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from lms_data.models.enums import CacheStrategy

T = TypeVar("T")


class CacheEntry(BaseModel, Generic[T]):
    """A single cached value with its expiry and access bookkeeping.

    ``is_expired`` is the only expiry rule: lazy checks on access, the
    periodic sweep and the storage-backed caches all go through it.
    """

    value: T
    expires_at: float
    created_at: float
    access_count: int = 0
    last_accessed: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def touch(self, now: float) -> None:
        self.access_count += 1
        self.last_accessed = now


class CacheConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: CacheStrategy = CacheStrategy.MEMORY
    max_size: int = Field(default=1000, ge=1)
    default_ttl: float = Field(default=300.0, gt=0)
    prefix: str = "app_cache_"
    sweep_interval: float = Field(default=300.0, gt=0)


class CacheStats(BaseModel):
    size: int
    max_size: int
    hits: int
    misses: int
    hit_rate: float
    entries: list[dict[str, Any]] = []
