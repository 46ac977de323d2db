import httpx
import pytest

from lms_data.cache.memory import MemoryCache
from lms_data.clients.http import HttpClient
from lms_data.config import reset_settings
from lms_data.models.http import HttpClientConfig
from tests.factories import BASE_URL, FakeClock, RecordingSleep, Router


@pytest.fixture(autouse=True)
def _reset_settings(monkeypatch: pytest.MonkeyPatch):
    """Keep the settings singleton and LMS env vars from leaking between tests."""
    for name in ("API_BASE_URL", "CACHE_STRATEGY", "LOG_LEVEL", "DATA_DIR"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def tmp_data_dir(tmp_path):
    """Provide a temporary data directory for tests that touch the filesystem."""
    return tmp_path / "data"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
async def memory_cache(clock: FakeClock):
    """MemoryCache on a fake clock; its sweep task is cancelled on teardown."""
    cache = MemoryCache(max_size=100, default_ttl=60.0, clock=clock)
    yield cache
    await cache.aclose()


@pytest.fixture
def router() -> Router:
    return Router()


@pytest.fixture
async def http_client(router: Router, sleep: RecordingSleep):
    client = HttpClient(
        HttpClientConfig(base_url=BASE_URL, retry_attempts=3, retry_delay=0.5),
        transport=httpx.MockTransport(router),
        sleep=sleep,
        rand=lambda: 0.0,
    )
    yield client
    await client.aclose()
