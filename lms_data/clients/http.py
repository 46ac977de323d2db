"""Async HTTP client with an interceptor pipeline, per-attempt timeout and retry."""

import asyncio
import logging
import random
import time
from collections.abc import Callable
from typing import Any

import httpx

from lms_data.clients.interceptors import (
    Handler,
    Interceptor,
    InterceptorChain,
    generate_request_id,
    redact_headers,
)
from lms_data.clients.resilience import (
    APIError,
    NetworkError,
    RequestTimeoutError,
    RetryLoop,
    SleepFn,
    classify_response,
)
from lms_data.models.enums import HookKind, HttpMethod
from lms_data.models.http import HttpClientConfig, HttpResponse, RequestConfig

logger = logging.getLogger(__name__)

_BODY_METHODS = frozenset({HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH})


def serialize_params(params: dict[str, Any] | None) -> list[tuple[str, str]]:
    """Turn *params* into query pairs, skipping ``None`` values.

    Booleans become ``true``/``false`` and sequences are comma-joined, which
    is what the API's query parser expects.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            text = "true" if value else "false"
        elif isinstance(value, list | tuple | set):
            text = ",".join(str(v) for v in value)
        else:
            text = str(value)
        pairs.append((key, text))
    return pairs


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            # Proxies send HTML error pages under the JSON content type
            logger.debug("Unparseable JSON body (status %d)", response.status_code)
    return response.text


class HttpClient:
    """Async client for the LMS API.

    Every call runs the request interceptors, sends the request under a
    per-attempt timeout, and runs the response interceptors. Transient
    failures (transport errors, 408, 429, 5xx) are retried with exponential
    backoff; other 4xx responses fail on the first attempt.

    Args:
        config: Validated client configuration.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        sleep: Awaitable delay used between attempts.
        rand: Jitter source for the backoff.
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self._config = config or HttpClientConfig()
        self._transport = transport
        self._sleep = sleep
        self._rand = rand
        self._client: httpx.AsyncClient | None = None
        self.interceptors = InterceptorChain()

        self.on_request(self._tag_and_log_request, name="request_log")
        self.on_request_error(self._log_request_error, name="request_error_log")
        self.on_response(self._log_response, name="response_log")
        self.on_response_error(self._log_response_error, name="response_error_log")

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Configuration & interceptors
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> HttpClientConfig:
        return self._config

    def update_config(self, **changes: Any) -> HttpClientConfig:
        """Apply *changes* on top of the current config, re-validating it."""
        self._config = HttpClientConfig.model_validate(
            {**self._config.model_dump(), **changes}
        )
        return self._config

    def add_interceptor(self, interceptor: Interceptor) -> Interceptor:
        return self.interceptors.add(interceptor)

    def remove_interceptor(self, interceptor: Interceptor) -> bool:
        return self.interceptors.remove(interceptor)

    def on_request(self, handler: Handler, name: str = "") -> Interceptor:
        return self.add_interceptor(Interceptor(HookKind.REQUEST, handler, name))

    def on_request_error(self, handler: Handler, name: str = "") -> Interceptor:
        return self.add_interceptor(Interceptor(HookKind.REQUEST_ERROR, handler, name))

    def on_response(self, handler: Handler, name: str = "") -> Interceptor:
        return self.add_interceptor(Interceptor(HookKind.RESPONSE, handler, name))

    def on_response_error(self, handler: Handler, name: str = "") -> Interceptor:
        return self.add_interceptor(Interceptor(HookKind.RESPONSE_ERROR, handler, name))

    # ------------------------------------------------------------------ #
    # Verbs
    # ------------------------------------------------------------------ #

    async def get(
        self, url: str, *, params: dict[str, Any] | None = None, **kwargs: Any,
    ) -> HttpResponse:
        return await self.request(HttpMethod.GET, url, params=params, **kwargs)

    async def post(self, url: str, data: Any = None, **kwargs: Any) -> HttpResponse:
        return await self.request(HttpMethod.POST, url, data=data, **kwargs)

    async def put(self, url: str, data: Any = None, **kwargs: Any) -> HttpResponse:
        return await self.request(HttpMethod.PUT, url, data=data, **kwargs)

    async def patch(self, url: str, data: Any = None, **kwargs: Any) -> HttpResponse:
        return await self.request(HttpMethod.PATCH, url, data=data, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> HttpResponse:
        return await self.request(HttpMethod.DELETE, url, **kwargs)

    async def request(
        self,
        method: HttpMethod | str,
        url: str,
        *,
        data: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        """Send a request through the interceptor pipeline with retry.

        Returns:
            The :class:`HttpResponse` of the first successful attempt.

        Raises:
            APIError: The classified error of the last attempt, once it is
                terminal or the attempts are exhausted.
        """
        base = RequestConfig(
            method=HttpMethod(str(method).upper()),
            url=self.build_url(url),
            headers=dict(headers or {}),
            params=dict(params or {}),
            data=data,
            timeout=timeout or self._config.timeout,
        )

        loop = RetryLoop(
            max_attempts=self._config.retry_attempts,
            base_delay=self._config.retry_delay,
            max_delay=self._config.max_retry_delay,
            sleep=self._sleep,
            rand=self._rand,
        )

        async def attempt(_: int) -> HttpResponse:
            return await self._attempt(base.model_copy(deep=True))

        return await loop.run(attempt)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def build_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        path = url if url.startswith("/") else f"/{url}"
        return f"{self._config.base_url}{path}"

    async def _attempt(self, config: RequestConfig) -> HttpResponse:
        config = await self.interceptors.run_request(config)
        try:
            response = await self._send(config)
            return await self.interceptors.run_response(response)
        except Exception as exc:
            await self.interceptors.run_response_error(exc)
            raise

    async def _send(self, config: RequestConfig) -> HttpResponse:
        headers = {
            "Content-Type": "application/json",
            **self._config.headers,
            **config.headers,
        }
        kwargs: dict[str, Any] = {
            "headers": headers,
            "params": serialize_params(config.params),
        }
        if config.data is not None and config.method in _BODY_METHODS:
            kwargs["json"] = config.data

        started = time.monotonic()
        try:
            async with asyncio.timeout(config.timeout):
                raw = await self._get_client().request(
                    config.method.value, config.url, **kwargs,
                )
        except TimeoutError as exc:
            raise RequestTimeoutError(
                f"{config.method} {config.url} timed out after {config.timeout}s",
                request_id=config.request_id,
            ) from exc
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                f"{config.method} {config.url} timed out: {exc}",
                request_id=config.request_id,
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(
                f"{config.method} {config.url} failed: {exc}",
                request_id=config.request_id,
            ) from exc
        elapsed = time.monotonic() - started

        response_headers = {k.lower(): v for k, v in raw.headers.items()}
        body = _parse_body(raw)
        classify_response(
            raw.status_code,
            status_text=raw.reason_phrase,
            request_id=config.request_id,
            body=body,
            headers=response_headers,
        )
        return HttpResponse(
            data=body,
            status=raw.status_code,
            status_text=raw.reason_phrase,
            headers=response_headers,
            request_id=config.request_id,
            elapsed=elapsed,
        )

    @staticmethod
    def _tag_and_log_request(config: RequestConfig) -> RequestConfig:
        config.request_id = generate_request_id()
        config.headers["X-Request-ID"] = config.request_id
        logger.info(
            "HTTP %s %s [%s] headers=%s",
            config.method, config.url, config.request_id, redact_headers(config.headers),
        )
        return config

    @staticmethod
    def _log_request_error(error: Exception) -> None:
        logger.error("HTTP request aborted by interceptor: %s", error)

    @staticmethod
    def _log_response(response: HttpResponse) -> HttpResponse:
        logger.info(
            "HTTP %d %s [%s] in %.3fs",
            response.status, response.status_text, response.request_id, response.elapsed,
        )
        return response

    @staticmethod
    def _log_response_error(error: Exception) -> None:
        if isinstance(error, APIError):
            logger.error(
                "HTTP error [%s] status=%s: %s",
                error.request_id, error.status_code, error,
            )
        else:
            logger.error("HTTP error: %s", error)
