from typing import Any

from pydantic import BaseModel, Field

from lms_data.models.enums import SortDirection


class SortOptions(BaseModel):
    field: str
    direction: SortDirection = SortDirection.ASC


class QueryParams(BaseModel):
    page: int | None = Field(default=None, ge=1)
    limit: int | None = Field(default=None, ge=1)
    search: str | None = None
    filters: dict[str, Any] = {}
    sort: SortOptions | None = None
    include: list[str] = []

    def to_query(self) -> dict[str, Any]:
        """Flatten into the query-string shape the API expects."""
        query: dict[str, Any] = {}
        if self.page is not None:
            query["page"] = self.page
        if self.limit is not None:
            query["limit"] = self.limit
        if self.search:
            query["search"] = self.search
        if self.sort is not None:
            query["sortBy"] = self.sort.field
            query["sortOrder"] = self.sort.direction.value
        query.update(self.filters)
        if self.include:
            query["include"] = ",".join(self.include)
        return query

    def cache_params(self) -> dict[str, Any] | None:
        """Return the params that identify this query in a cache key, or None."""
        dumped = self.model_dump(mode="json", exclude_defaults=True)
        return dumped or None
