"""Named HttpClient registry that installs auth and error-handling interceptors."""

import asyncio
import logging
import random
from collections.abc import Callable
from typing import Any

import httpx

from lms_data.clients.http import HttpClient
from lms_data.clients.resilience import AuthError, RateLimitError, SleepFn
from lms_data.models.http import HttpClientConfig, RequestConfig
from lms_data.storage.kv_store import AUTH_TOKEN_KEY, KeyValueStore, StorageError

logger = logging.getLogger(__name__)


class HttpClientFactory:
    """Registry of named :class:`HttpClient` instances.

    The first ``create`` call for a name builds and keeps the client; later
    calls return it unchanged, whatever config they pass.

    Args:
        default_config: Base config every client starts from.
        token_store: Store holding the bearer token under ``auth_token``.
        client_version: Sent as ``X-Client-Version``.
        transport: Optional httpx transport shared by created clients.
        sleep: Backoff delay primitive passed to created clients.
        rand: Jitter source passed to created clients.
    """

    def __init__(
        self,
        default_config: HttpClientConfig | None = None,
        token_store: KeyValueStore | None = None,
        client_version: str = "1.0.0",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.default_config = default_config or HttpClientConfig()
        self.token_store = token_store
        self.client_version = client_version
        self._transport = transport
        self._sleep = sleep
        self._rand = rand
        self._instances: dict[str, HttpClient] = {}

    def create(
        self, name: str = "default", config: HttpClientConfig | dict[str, Any] | None = None,
    ) -> HttpClient:
        existing = self._instances.get(name)
        if existing is not None:
            if config is not None:
                logger.debug("HTTP client %s already exists, ignoring new config", name)
            return existing

        final = self._merge(config)
        client = HttpClient(final, transport=self._transport, sleep=self._sleep, rand=self._rand)
        self._add_common_interceptors(client, name)
        self._instances[name] = client
        logger.info("HTTP client created: %s (base_url=%s)", name, final.base_url)
        return client

    def get(self, name: str = "default") -> HttpClient | None:
        return self._instances.get(name)

    async def remove(self, name: str) -> bool:
        """Close and forget the client called *name*. False if there was none."""
        client = self._instances.pop(name, None)
        if client is None:
            return False
        await client.aclose()
        return True

    async def clear(self) -> None:
        for name in list(self._instances):
            await self.remove(name)

    async def aclose(self) -> None:
        """Close every client's connection pool and empty the registry."""
        await self.clear()

    def _merge(self, config: HttpClientConfig | dict[str, Any] | None) -> HttpClientConfig:
        if config is None:
            return self.default_config
        if isinstance(config, HttpClientConfig):
            return config
        return HttpClientConfig.model_validate({**self.default_config.model_dump(), **config})

    # ------------------------------------------------------------------ #
    # Common interceptors
    # ------------------------------------------------------------------ #

    def _add_common_interceptors(self, client: HttpClient, name: str) -> None:
        def attach_identity(config: RequestConfig) -> RequestConfig:
            token = self.get_auth_token()
            if token:
                config.headers["Authorization"] = f"Bearer {token}"
            config.headers["X-Client-Name"] = name
            config.headers["X-Client-Version"] = self.client_version
            return config

        def handle_auth_and_rate_limit(error: Exception) -> None:
            if isinstance(error, AuthError):
                logger.warning("Authentication error on %s, clearing token", name)
                self.clear_auth_token()
            elif isinstance(error, RateLimitError) and error.retry_after:
                logger.warning("Rate limited on %s, retry after %s seconds", name, error.retry_after)

        client.on_request(attach_identity, name="auth")
        client.on_response_error(handle_auth_and_rate_limit, name="auth_error")

    def get_auth_token(self) -> str | None:
        if self.token_store is None:
            return None
        try:
            return self.token_store.get_item(AUTH_TOKEN_KEY)
        except StorageError:
            logger.warning("Failed to read auth token", exc_info=True)
            return None

    def clear_auth_token(self) -> None:
        if self.token_store is None:
            return
        try:
            self.token_store.remove_item(AUTH_TOKEN_KEY)
        except StorageError:
            logger.warning("Failed to clear auth token", exc_info=True)
