import logging
from typing import Any

from lms_data.models.enums import CourseStatus
from lms_data.models.query import QueryParams
from lms_data.models.result import Result
from lms_data.repositories.base import ID, BaseRepository, scoped_params

logger = logging.getLogger(__name__)

VideoCourse = dict[str, Any]

POPULAR_TTL = 30 * 60.0


class VideoCoursesRepository(BaseRepository[VideoCourse, dict[str, Any], dict[str, Any]]):
    """Video courses, cached for 15 minutes (popular list for 30)."""

    endpoint = "/api/video-courses"
    entity_name = "VideoCourse"
    cache_ttl = 15 * 60.0
    id_scoped_operations = ("byId", "withLessons")
    list_operations = ("all", "count", "byInstructor", "byStatus", "popular")

    async def get_by_instructor(self, instructor_id: ID, params: QueryParams | None = None) -> Result[Any]:
        query = {**(params.to_query() if params else {}), "instructorId": instructor_id}
        return await self.cached_query(
            "byInstructor", scoped_params({"instructorId": instructor_id}, params), self.endpoint, query,
        )

    async def get_by_status(self, status: CourseStatus, params: QueryParams | None = None) -> Result[Any]:
        query = {**(params.to_query() if params else {}), "status": status.value}
        return await self.cached_query(
            "byStatus", scoped_params({"status": status.value}, params), self.endpoint, query,
        )

    async def get_with_lessons(self, id: ID) -> Result[VideoCourse]:
        return await self.cached_query(
            "withLessons", {"id": id}, f"{self.endpoint}/{id}", {"include": "lessons"},
        )

    async def get_popular(self, limit: int = 10) -> Result[list[VideoCourse]]:
        return await self.cached_query(
            "popular", {"limit": limit}, f"{self.endpoint}/popular", {"limit": limit}, ttl=POPULAR_TTL,
        )

    async def search(self, query: str, params: QueryParams | None = None) -> Result[Any]:
        """Full-text search. Results are never cached."""
        search_params = {**(params.to_query() if params else {}), "search": query}
        return await self.fetch("search", f"{self.endpoint}/search", search_params)

    async def toggle_status(self, id: ID) -> Result[VideoCourse]:
        logger.info("Toggling course status %s", id)
        return await self.mutate(
            "toggleStatus", lambda: self.http_client.patch(f"{self.endpoint}/{id}/toggle-status"), [id],
        )

    async def bulk_update(self, updates: list[dict[str, Any]]) -> Result[list[VideoCourse]]:
        """PATCH ``{endpoint}/bulk`` with ``[{"id": ..., "data": {...}}, ...]``."""
        logger.info("Bulk updating %d courses", len(updates))
        return await self.mutate(
            "bulkUpdate",
            lambda: self.http_client.patch(f"{self.endpoint}/bulk", {"updates": updates}),
            [update["id"] for update in updates],
        )

    # ── Hooks ─────────────────────────────────────────────────────

    async def before_create(self, data: dict[str, Any]) -> dict[str, Any]:
        return {**data, "currency": data.get("currency") or "BRL", "tags": data.get("tags") or []}

    async def after_create(self, entity: VideoCourse) -> VideoCourse:
        logger.info("Course created: %s (%s)", entity.get("id"), entity.get("title"))
        return entity

    async def before_update(self, id: ID, data: dict[str, Any]) -> dict[str, Any]:
        logger.info("Updating course %s, fields=%s", id, sorted(data))
        return data

    async def after_update(self, entity: VideoCourse) -> VideoCourse:
        logger.info("Course updated: %s (status=%s)", entity.get("id"), entity.get("status"))
        return entity

    async def before_delete(self, id: ID) -> None:
        logger.warning("Deleting course %s", id)

    async def after_delete(self, id: ID) -> None:
        logger.info("Course deleted: %s", id)
