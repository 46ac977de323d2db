"""Composition root: builds the caches, HTTP clients and repositories."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path

import httpx

from lms_data.cache.manager import CacheManager
from lms_data.clients.factory import HttpClientFactory
from lms_data.config import Settings, get_settings
from lms_data.errors import ErrorHandler
from lms_data.repositories.simulados import SimuladosRepository
from lms_data.repositories.video_courses import VideoCoursesRepository
from lms_data.storage.kv_store import EncryptedFileStore, SessionStore

logger = logging.getLogger(__name__)


def setup_logging(log_level: str, log_dir: Path) -> None:
    """Configure logging with file rotation and console output.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        log_dir: Directory for ``lms_data.log``.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Exact type check: FileHandler subclasses StreamHandler
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    log_dir.mkdir(parents=True, exist_ok=True)
    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_dir / "lms_data.log",
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def initialize(settings: Settings | None = None) -> Settings:
    """Create the data directories and configure logging. Returns the settings."""
    settings = settings or get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.storage_path.mkdir(parents=True, exist_ok=True)
    setup_logging(settings.log_level, settings.log_path)
    return settings


@dataclass
class DataLayer:
    """Everything a caller needs, owned in one place instead of module globals."""

    settings: Settings
    caches: CacheManager
    clients: HttpClientFactory
    token_store: EncryptedFileStore
    error_handler: ErrorHandler
    video_courses: VideoCoursesRepository
    simulados: SimuladosRepository

    async def aclose(self) -> None:
        await self.clients.aclose()
        await self.caches.clear_all_caches()
        logger.info("Data layer closed")


def build_data_layer(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DataLayer:
    """Wire the data layer from *settings* (the process settings by default).

    Args:
        settings: Configuration to build from.
        transport: Optional httpx transport for every client, used in tests.
    """
    settings = settings or get_settings()
    token_store = EncryptedFileStore(settings.storage_path)
    caches = CacheManager(
        settings.cache_config(),
        local_store=token_store,
        session_store=SessionStore(),
    )
    clients = HttpClientFactory(
        settings.http_client_config(),
        token_store,
        settings.app_version,
        transport=transport,
    )
    error_handler = ErrorHandler()
    api = clients.create("default")

    layer = DataLayer(
        settings=settings,
        caches=caches,
        clients=clients,
        token_store=token_store,
        error_handler=error_handler,
        video_courses=VideoCoursesRepository(api, caches.get_cache("video_courses"), error_handler),
        simulados=SimuladosRepository(api, caches.get_cache("simulados"), error_handler),
    )
    logger.info("Data layer ready (api=%s, cache=%s)", settings.api_base_url, settings.cache_strategy)
    return layer


@asynccontextmanager
async def data_layer_lifespan(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[DataLayer]:
    """Build the data layer and close its clients and caches on exit."""
    layer = build_data_layer(settings, transport=transport)
    try:
        yield layer
    finally:
        await layer.aclose()
