"""Tests for the video course and simulado repositories."""

import json

import httpx
import pytest

from lms_data.cache.memory import MemoryCache
from lms_data.clients.http import HttpClient
from lms_data.errors import ErrorHandler
from lms_data.models.enums import CourseStatus, DifficultyLevel, SimuladoType
from lms_data.models.query import QueryParams
from lms_data.models.result import Failure, Success
from lms_data.repositories.simulados import SimuladosRepository
from lms_data.repositories.video_courses import VideoCoursesRepository
from tests.factories import json_response, make_course, make_simulado


@pytest.fixture
def courses(http_client: HttpClient, memory_cache: MemoryCache) -> VideoCoursesRepository:
    return VideoCoursesRepository(http_client, memory_cache, ErrorHandler(log_errors=False))


@pytest.fixture
def simulados(http_client: HttpClient, memory_cache: MemoryCache) -> SimuladosRepository:
    return SimuladosRepository(http_client, memory_cache, ErrorHandler(log_errors=False))


# ── Video courses ────────────────────────────────────────────────────────────


class TestVideoCoursesReads:
    async def test_get_by_instructor(self, courses: VideoCoursesRepository, router):
        router.add("GET", "/api/video-courses", json_response(200, {"items": [make_course()]}))
        result = await courses.get_by_instructor("i1", QueryParams(page=1))
        await courses.get_by_instructor("i1", QueryParams(page=1))
        assert isinstance(result, Success)
        assert len(router.requests) == 1
        assert router.requests[0].url.params["instructorId"] == "i1"
        assert router.requests[0].url.params["page"] == "1"

    async def test_instructor_scopes_the_cache_key(self, courses: VideoCoursesRepository, router):
        router.add("GET", "/api/video-courses", json_response(200, {"items": []}))
        await courses.get_by_instructor("i1")
        await courses.get_by_instructor("i2")
        assert len(router.requests) == 2

    async def test_get_by_status(self, courses: VideoCoursesRepository, router):
        router.add("GET", "/api/video-courses", json_response(200, {"items": []}))
        await courses.get_by_status(CourseStatus.PUBLISHED)
        assert router.requests[0].url.params["status"] == "published"

    async def test_get_with_lessons(self, courses: VideoCoursesRepository, memory_cache, router):
        router.add("GET", "/api/video-courses/c1", json_response(200, make_course(lessons=[])))
        result = await courses.get_with_lessons("c1")
        assert result.data["lessons"] == []
        assert router.requests[0].url.params["include"] == "lessons"
        assert await memory_cache.has(courses.get_cache_key("withLessons", {"id": "c1"}))

    async def test_popular_cached_for_thirty_minutes(self, courses, memory_cache, router, clock):
        router.add("GET", "/api/video-courses/popular", json_response(200, [make_course()]))
        await courses.get_popular()
        assert router.requests[0].url.params["limit"] == "10"
        entry = memory_cache.entry(courses.get_cache_key("popular", {"limit": 10}))
        assert entry.expires_at == clock.now + 30 * 60

    async def test_default_ttl_fifteen_minutes(self, courses, memory_cache, router, clock):
        router.add("GET", "/api/video-courses/c1", json_response(200, make_course()))
        await courses.get_by_id("c1")
        entry = memory_cache.entry(courses.get_cache_key("byId", {"id": "c1"}))
        assert entry.expires_at == clock.now + 15 * 60

    async def test_search_is_not_cached(self, courses: VideoCoursesRepository, router):
        router.add("GET", "/api/video-courses/search", json_response(200, {"items": []}))
        await courses.search("python", QueryParams(limit=5))
        await courses.search("python", QueryParams(limit=5))
        assert len(router.requests) == 2
        assert router.requests[0].url.params["search"] == "python"
        assert router.requests[0].url.params["limit"] == "5"


class TestVideoCoursesWrites:
    async def test_create_defaults(self, courses: VideoCoursesRepository, router):
        router.add("POST", "/api/video-courses", json_response(201, make_course()))
        await courses.create({"title": "Python", "instructorId": "i1"})
        body = json.loads(router.requests[0].content)
        assert body["currency"] == "BRL"
        assert body["tags"] == []

    async def test_create_keeps_given_currency(self, courses: VideoCoursesRepository, router):
        router.add("POST", "/api/video-courses", json_response(201, make_course()))
        await courses.create({"title": "Python", "currency": "USD", "tags": ["x"]})
        body = json.loads(router.requests[0].content)
        assert body["currency"] == "USD"
        assert body["tags"] == ["x"]

    async def test_toggle_status_invalidates(self, courses, memory_cache, router):
        key = courses.get_cache_key("withLessons", {"id": "c1"})
        await memory_cache.set(key, make_course())
        router.add("PATCH", "/api/video-courses/c1/toggle-status", json_response(200, make_course(status="draft")))
        result = await courses.toggle_status("c1")
        assert result.data["status"] == "draft"
        assert await memory_cache.has(key) is False

    async def test_update_drops_with_lessons_entry(self, courses, memory_cache, router):
        key = courses.get_cache_key("withLessons", {"id": "c1"})
        await memory_cache.set(key, make_course())
        router.add("PUT", "/api/video-courses/c1", json_response(200, make_course(title="New")))
        await courses.update("c1", {"title": "New"})
        assert await memory_cache.has(key) is False

    async def test_bulk_update(self, courses, memory_cache, router):
        for id in ("c1", "c2"):
            await memory_cache.set(courses.get_cache_key("byId", {"id": id}), make_course(id=id))
        router.add("PATCH", "/api/video-courses/bulk", json_response(200, [make_course(), make_course(id="c2")]))
        updates = [{"id": "c1", "data": {"price": 10}}, {"id": "c2", "data": {"price": 20}}]
        result = await courses.bulk_update(updates)
        assert len(result.data) == 2
        assert json.loads(router.requests[0].content) == {"updates": updates}
        assert memory_cache.size == 0

    async def test_update_refreshes_filtered_lists(self, courses: VideoCoursesRepository, router):
        router.add(
            "GET", "/api/video-courses",
            json_response(200, {"items": [make_course()]}),
            json_response(200, {"items": []}),
        )
        router.add("PUT", "/api/video-courses/c1", json_response(200, make_course(status="archived")))
        await courses.get_by_status(CourseStatus.PUBLISHED)

        await courses.update("c1", {"status": "archived"})
        result = await courses.get_by_status(CourseStatus.PUBLISHED)

        assert result == Success({"items": []})
        assert len(router.calls("GET", "/api/video-courses")) == 2

    async def test_create_drops_instructor_and_popular_lists(self, courses, memory_cache, router):
        by_instructor = courses.get_cache_key("byInstructor", {"instructorId": "i1"})
        popular = courses.get_cache_key("popular", {"limit": 10})
        await memory_cache.set(by_instructor, {"items": []})
        await memory_cache.set(popular, [])
        router.add("POST", "/api/video-courses", json_response(201, make_course()))

        await courses.create({"title": "Python"})

        assert await memory_cache.has(by_instructor) is False
        assert await memory_cache.has(popular) is False

    async def test_toggle_status_failure(self, courses: VideoCoursesRepository, router):
        router.add("PATCH", "/api/video-courses/c1/toggle-status", json_response(403))
        result = await courses.toggle_status("c1")
        assert isinstance(result, Failure)
        assert result.error.context["action"] == "toggleStatus"


# ── Simulados ────────────────────────────────────────────────────────────────


class TestSimuladosReads:
    async def test_get_by_type(self, simulados: SimuladosRepository, router):
        router.add("GET", "/api/simulados", json_response(200, {"items": [make_simulado()]}))
        await simulados.get_by_type(SimuladoType.EXAM)
        await simulados.get_by_type(SimuladoType.EXAM)
        assert len(router.requests) == 1
        assert router.requests[0].url.params["type"] == "exam"

    async def test_get_by_difficulty(self, simulados: SimuladosRepository, router):
        router.add("GET", "/api/simulados", json_response(200, {"items": []}))
        await simulados.get_by_difficulty(DifficultyLevel.HARD, QueryParams(limit=3))
        params = router.requests[0].url.params
        assert params["difficulty"] == "hard"
        assert params["limit"] == "3"

    async def test_get_by_creator(self, simulados: SimuladosRepository, router):
        router.add("GET", "/api/simulados", json_response(200, {"items": []}))
        await simulados.get_by_creator("u1")
        assert router.requests[0].url.params["createdBy"] == "u1"

    async def test_get_public(self, simulados: SimuladosRepository, memory_cache, router):
        router.add("GET", "/api/simulados", json_response(200, {"items": []}))
        await simulados.get_public()
        assert router.requests[0].url.params["isPublic"] == "true"
        assert await memory_cache.has("Simulado:public")

    async def test_get_with_questions(self, simulados: SimuladosRepository, router):
        router.add("GET", "/api/simulados/s1", json_response(200, make_simulado(questions=[])))
        await simulados.get_with_questions("s1")
        assert router.requests[0].url.params["include"] == "questions"

    async def test_statistics_cached_for_five_minutes(self, simulados, memory_cache, router, clock):
        router.add("GET", "/api/simulados/s1/statistics", json_response(200, {"attempts": 4}))
        result = await simulados.get_statistics("s1")
        assert result == Success({"attempts": 4})
        entry = memory_cache.entry(simulados.get_cache_key("statistics", {"id": "s1"}))
        assert entry.expires_at == clock.now + 5 * 60

    async def test_default_ttl_ten_minutes(self, simulados, memory_cache, router, clock):
        router.add("GET", "/api/simulados/s1", json_response(200, make_simulado()))
        await simulados.get_by_id("s1")
        entry = memory_cache.entry(simulados.get_cache_key("byId", {"id": "s1"}))
        assert entry.expires_at == clock.now + 10 * 60

    async def test_search(self, simulados: SimuladosRepository, router):
        router.add("GET", "/api/simulados/search", json_response(200, {"items": []}))
        await simulados.search("enem")
        assert router.requests[0].url.params["search"] == "enem"


class TestSimuladosWrites:
    async def test_create_defaults(self, simulados: SimuladosRepository, router):
        router.add("POST", "/api/simulados", json_response(201, make_simulado()))
        await simulados.create({"title": "ENEM", "type": "exam"})
        body = json.loads(router.requests[0].content)
        assert body["maxAttempts"] == 3
        assert body["tags"] == []

    async def test_clone_invalidates_lists_only(self, simulados, memory_cache, router):
        await memory_cache.set("Simulado:all", [])
        by_id = simulados.get_cache_key("byId", {"id": "s1"})
        await memory_cache.set(by_id, make_simulado())
        router.add("POST", "/api/simulados/s1/clone", json_response(201, make_simulado(id="s2")))
        result = await simulados.clone("s1", "Copy")
        assert result.data["id"] == "s2"
        assert json.loads(router.requests[0].content) == {"title": "Copy"}
        assert await memory_cache.has("Simulado:all") is False
        assert await memory_cache.has(by_id) is True

    async def test_toggle_public(self, simulados, memory_cache, router):
        stats = simulados.get_cache_key("statistics", {"id": "s1"})
        await memory_cache.set(stats, {"attempts": 1})
        router.add("PATCH", "/api/simulados/s1/toggle-public", json_response(200, make_simulado(isPublic=False)))
        result = await simulados.toggle_public("s1")
        assert result.data["isPublic"] is False
        assert await memory_cache.has(stats) is False

    async def test_delete(self, simulados: SimuladosRepository, router):
        router.add("DELETE", "/api/simulados/s1", httpx.Response(204))
        assert await simulados.delete("s1") == Success(None)

    async def test_toggle_public_drops_filtered_lists(self, simulados, memory_cache, router):
        keys = [
            "Simulado:public",
            simulados.get_cache_key("byType", {"type": "exam"}),
            simulados.get_cache_key("byDifficulty", {"difficulty": "hard"}),
            simulados.get_cache_key("byCreator", {"createdBy": "u1"}),
        ]
        for key in keys:
            await memory_cache.set(key, {"items": []})
        router.add("PATCH", "/api/simulados/s1/toggle-public", json_response(200, make_simulado(isPublic=False)))

        await simulados.toggle_public("s1")

        assert [await memory_cache.has(key) for key in keys] == [False, False, False, False]
