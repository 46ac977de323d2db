import logging
from typing import Any

from lms_data.models.enums import DifficultyLevel, SimuladoType
from lms_data.models.query import QueryParams
from lms_data.models.result import Result
from lms_data.repositories.base import ID, BaseRepository, scoped_params

logger = logging.getLogger(__name__)

Simulado = dict[str, Any]

STATISTICS_TTL = 5 * 60.0
DEFAULT_MAX_ATTEMPTS = 3


class SimuladosRepository(BaseRepository[Simulado, dict[str, Any], dict[str, Any]]):
    """Practice exams (simulados), cached for 10 minutes."""

    endpoint = "/api/simulados"
    entity_name = "Simulado"
    cache_ttl = 10 * 60.0
    id_scoped_operations = ("byId", "withQuestions", "statistics")
    list_operations = ("all", "count", "byType", "byDifficulty", "byCreator", "public")

    async def _filtered(
        self, operation: str, scope: dict[str, Any], params: QueryParams | None,
    ) -> Result[Any]:
        query = {**(params.to_query() if params else {}), **scope}
        return await self.cached_query(operation, scoped_params(scope, params), self.endpoint, query)

    async def get_by_type(self, type: SimuladoType, params: QueryParams | None = None) -> Result[Any]:
        return await self._filtered("byType", {"type": type.value}, params)

    async def get_by_difficulty(
        self, difficulty: DifficultyLevel, params: QueryParams | None = None,
    ) -> Result[Any]:
        return await self._filtered("byDifficulty", {"difficulty": difficulty.value}, params)

    async def get_by_creator(self, created_by: ID, params: QueryParams | None = None) -> Result[Any]:
        return await self._filtered("byCreator", {"createdBy": created_by}, params)

    async def get_public(self, params: QueryParams | None = None) -> Result[Any]:
        query = {**(params.to_query() if params else {}), "isPublic": True}
        return await self.cached_query(
            "public", params.cache_params() if params else None, self.endpoint, query,
        )

    async def get_with_questions(self, id: ID) -> Result[Simulado]:
        return await self.cached_query(
            "withQuestions", {"id": id}, f"{self.endpoint}/{id}", {"include": "questions"},
        )

    async def get_statistics(self, id: ID) -> Result[dict[str, Any]]:
        return await self.cached_query(
            "statistics", {"id": id}, f"{self.endpoint}/{id}/statistics", ttl=STATISTICS_TTL,
        )

    async def search(self, query: str, params: QueryParams | None = None) -> Result[Any]:
        search_params = {**(params.to_query() if params else {}), "search": query}
        return await self.fetch("search", f"{self.endpoint}/search", search_params)

    async def clone(self, id: ID, new_title: str | None = None) -> Result[Simulado]:
        """Copy a simulado server-side. Only list entries are invalidated."""
        logger.info("Cloning simulado %s", id)
        return await self.mutate(
            "clone", lambda: self.http_client.post(f"{self.endpoint}/{id}/clone", {"title": new_title}),
        )

    async def toggle_public(self, id: ID) -> Result[Simulado]:
        logger.info("Toggling simulado visibility %s", id)
        return await self.mutate(
            "togglePublic", lambda: self.http_client.patch(f"{self.endpoint}/{id}/toggle-public"), [id],
        )

    # ── Hooks ─────────────────────────────────────────────────────

    async def before_create(self, data: dict[str, Any]) -> dict[str, Any]:
        return {
            **data,
            "tags": data.get("tags") or [],
            "maxAttempts": data.get("maxAttempts") or DEFAULT_MAX_ATTEMPTS,
        }

    async def after_create(self, entity: Simulado) -> Simulado:
        logger.info(
            "Simulado created: %s (%s, type=%s)", entity.get("id"), entity.get("title"), entity.get("type"),
        )
        return entity

    async def before_update(self, id: ID, data: dict[str, Any]) -> dict[str, Any]:
        logger.info("Updating simulado %s, fields=%s", id, sorted(data))
        return data

    async def after_update(self, entity: Simulado) -> Simulado:
        logger.info("Simulado updated: %s (status=%s)", entity.get("id"), entity.get("status"))
        return entity

    async def before_delete(self, id: ID) -> None:
        logger.warning("Deleting simulado %s", id)

    async def after_delete(self, id: ID) -> None:
        logger.info("Simulado deleted: %s", id)
