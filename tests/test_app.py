import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import httpx
import pytest

from lms_data.app import DataLayer, build_data_layer, data_layer_lifespan, initialize, setup_logging
from lms_data.cache.memory import MemoryCache
from lms_data.config import Settings
from lms_data.models.result import Success
from lms_data.storage.kv_store import AUTH_TOKEN_KEY
from tests.factories import Router, json_response, make_course


def _drop_root_handlers() -> None:
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


class TestSetupLogging:
    """Test setup_logging configuration."""

    def setup_method(self):
        _drop_root_handlers()

    def teardown_method(self):
        _drop_root_handlers()

    def test_sets_root_logger_level(self, tmp_path):
        setup_logging("DEBUG", tmp_path)
        assert logging.getLogger().level == logging.DEBUG

    def test_creates_handlers(self, tmp_path):
        setup_logging("INFO", tmp_path)
        root = logging.getLogger()
        assert len([h for h in root.handlers if type(h) is logging.StreamHandler]) == 1
        assert len([h for h in root.handlers if isinstance(h, RotatingFileHandler)]) == 1

    def test_log_file_path(self, tmp_path):
        setup_logging("INFO", tmp_path / "logs")
        file_handler = next(h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler))
        assert Path(file_handler.baseFilename) == tmp_path / "logs" / "lms_data.log"
        assert (tmp_path / "logs").is_dir()

    def test_no_duplicate_handlers_on_second_call(self, tmp_path):
        setup_logging("INFO", tmp_path)
        setup_logging("INFO", tmp_path)
        root = logging.getLogger()
        assert len([h for h in root.handlers if type(h) is logging.StreamHandler]) == 1
        assert len([h for h in root.handlers if isinstance(h, RotatingFileHandler)]) == 1

    def test_invalid_log_level_falls_back_to_info(self, tmp_path):
        setup_logging("INVALID_LEVEL", tmp_path)
        assert logging.getLogger().level == logging.INFO


class TestInitialize:
    """Test the initialize function."""

    def setup_method(self):
        _drop_root_handlers()

    def teardown_method(self):
        _drop_root_handlers()

    def test_creates_directories(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
        settings = initialize()
        assert settings.data_dir == tmp_path / "data"
        assert (tmp_path / "data" / "storage").is_dir()
        assert (tmp_path / "data" / "logs").is_dir()

    def test_uses_given_settings(self, tmp_path):
        settings = Settings(_env_file=None, data_dir=tmp_path, log_level="WARNING")
        assert initialize(settings) is settings
        assert logging.getLogger().level == logging.WARNING


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(_env_file=None, data_dir=tmp_path, api_base_url="http://api.test")


class TestBuildDataLayer:
    async def test_repositories_use_named_caches(self, settings: Settings):
        layer = build_data_layer(settings, transport=httpx.MockTransport(Router()))
        assert isinstance(layer, DataLayer)
        assert layer.video_courses.cache is layer.caches.get("video_courses")
        assert layer.simulados.cache is layer.caches.get("simulados")
        assert isinstance(layer.video_courses.cache, MemoryCache)
        assert layer.video_courses.http_client is layer.clients.get("default")
        await layer.aclose()

    async def test_sends_stored_token(self, settings: Settings):
        router = Router().add("GET", "/api/video-courses/c1", json_response(200, make_course()))
        layer = build_data_layer(settings, transport=httpx.MockTransport(router))
        layer.token_store.set_item(AUTH_TOKEN_KEY, "tok-1")

        result = await layer.video_courses.get_by_id("c1")

        assert result == Success(make_course())
        headers = router.requests[0].headers
        assert headers["authorization"] == "Bearer tok-1"
        assert headers["x-client-name"] == "default"
        assert headers["x-client-version"] == "1.0.0"
        assert headers["accept"] == "application/json"
        await layer.aclose()

    async def test_token_persists_encrypted(self, settings: Settings):
        layer = build_data_layer(settings, transport=httpx.MockTransport(Router()))
        layer.token_store.set_item(AUTH_TOKEN_KEY, "tok-1")
        await layer.aclose()
        assert (settings.storage_path / "store.enc").exists()
        again = build_data_layer(settings, transport=httpx.MockTransport(Router()))
        assert again.token_store.get_item(AUTH_TOKEN_KEY) == "tok-1"
        await again.aclose()


class TestLifespan:
    async def test_closes_clients_and_caches(self, settings: Settings):
        router = Router().add("GET", "/api/simulados/s1", json_response(200, {"id": "s1"}))
        async with data_layer_lifespan(settings, transport=httpx.MockTransport(router)) as layer:
            await layer.simulados.get_by_id("s1")
            cache = layer.simulados.cache
            assert cache.size == 1
        assert layer.clients.get("default") is None
        assert cache.size == 0
