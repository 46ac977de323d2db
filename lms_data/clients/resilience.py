"""Resilience primitives: exception hierarchy, response classification, retry loop."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from lms_data.models.enums import RetryPhase

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


# ── Exception Hierarchy ──────────────────────────────────────────────────────


class APIError(Exception):
    """Base class for all errors raised by the HTTP client.

    Args:
        message: Human-readable description.
        status_code: HTTP status, or ``None`` for transport-level failures.
        request_id: The ``X-Request-ID`` of the failed attempt.
        body: Parsed response body, if any.
        headers: Lower-cased response headers, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        request_id: str | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.request_id = request_id
        self.body = body
        self.headers = headers or {}


class TransientAPIError(APIError):
    """Retriable errors (transport failures, 408, 429, 5xx)."""


class PermanentAPIError(APIError):
    """Non-retriable errors (4xx other than 408 and 429)."""


class NetworkError(TransientAPIError):
    """Transport failure: connection refused, DNS, reset."""


class RequestTimeoutError(NetworkError):
    """The per-attempt timeout elapsed and the attempt was cancelled."""


class ServerError(TransientAPIError):
    """HTTP 5xx."""


class RetryableClientError(TransientAPIError):
    """HTTP 408: the server timed out waiting for the request."""


class RateLimitError(TransientAPIError):
    """HTTP 429. ``retry_after`` holds the server's hint, when sent."""

    @property
    def retry_after(self) -> str | None:
        return self.headers.get("retry-after")


class ClientError(PermanentAPIError):
    """HTTP 4xx that will not succeed on retry."""


class AuthError(ClientError):
    """Authentication failure (401)."""


class NotFoundError(ClientError):
    """Resource not found (404)."""


RETRYABLE_CLIENT_STATUS_CODES = frozenset({408, 429})


# ── Response Classification ──────────────────────────────────────────────────


def classify_response(
    status: int,
    *,
    status_text: str = "",
    request_id: str | None = None,
    body: Any = None,
    headers: dict[str, str] | None = None,
) -> None:
    """Raise an appropriate error based on HTTP status code.

    Raises:
        AuthError: On 401.
        NotFoundError: On 404.
        RetryableClientError: On 408.
        RateLimitError: On 429.
        ClientError: On any other 4xx.
        ServerError: On 5xx.
    """
    if status < 400:
        return

    message = f"HTTP {status}"
    if status_text:
        message = f"{message} {status_text}"
    kwargs: dict[str, Any] = {
        "status_code": status,
        "request_id": request_id,
        "body": body,
        "headers": headers,
    }

    if status == 401:
        raise AuthError(message, **kwargs)
    if status == 404:
        raise NotFoundError(message, **kwargs)
    if status == 408:
        raise RetryableClientError(message, **kwargs)
    if status == 429:
        raise RateLimitError(message, **kwargs)
    if status < 500:
        raise ClientError(message, **kwargs)
    raise ServerError(message, **kwargs)


def is_retryable(exc: BaseException) -> bool:
    """Return True if *exc* may succeed when the request is attempted again."""
    return isinstance(exc, TransientAPIError)


# ── Backoff ──────────────────────────────────────────────────────────────────


def compute_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float = 30.0,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay before the attempt following *attempt* (1-based).

    Exponential in the attempt number with up to 10% jitter on top,
    capped at *max_delay*.
    """
    exponential = base_delay * 2 ** (attempt - 1)
    jitter = rand() * 0.1 * exponential
    return min(exponential + jitter, max_delay)


class wait_exponential_jitter_capped(wait_base):  # noqa: N801
    """Tenacity wait strategy wrapping :func:`compute_backoff`."""

    def __init__(
        self,
        base_delay: float,
        max_delay: float = 30.0,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rand = rand

    def __call__(self, retry_state: RetryCallState) -> float:
        return compute_backoff(
            retry_state.attempt_number, self.base_delay, self.max_delay, self.rand,
        )


# ── Retry Loop ───────────────────────────────────────────────────────────────


class RetryLoop:
    """Retry state machine for a single logical request.

    Phases: ``ATTEMPTING`` moves to ``SUCCEEDED``, ``FAILED_TERMINAL`` or
    ``SLEEPING``; ``SLEEPING`` moves back to ``ATTEMPTING`` once the delay has
    elapsed. The delay itself goes through *sleep*, so the loop runs under
    any scheduler that can provide an awaitable sleep.

    Args:
        max_attempts: Total attempts, including the first.
        base_delay: Backoff base in seconds.
        max_delay: Upper bound on any single delay.
        sleep: Awaitable delay primitive.
        rand: Jitter source in ``[0, 1)``.
        retry_if: Predicate deciding whether an exception is worth retrying.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: SleepFn = asyncio.sleep,
        rand: Callable[[], float] = random.random,
        retry_if: Callable[[BaseException], bool] = is_retryable,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._rand = rand
        self._retry_if = retry_if

        self.phase = RetryPhase.ATTEMPTING
        self.attempt = 0
        self.last_error: BaseException | None = None
        self.transitions: list[RetryPhase] = []
        self.delays: list[float] = []

    @property
    def done(self) -> bool:
        return self.phase in (RetryPhase.SUCCEEDED, RetryPhase.FAILED_TERMINAL)

    def _enter(self, phase: RetryPhase) -> None:
        self.phase = phase
        self.transitions.append(phase)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self.delays.append(delay)
        self._enter(RetryPhase.SLEEPING)
        logger.warning(
            "Attempt %d/%d failed, retrying in %.2fs: %s",
            retry_state.attempt_number, self.max_attempts, delay, self.last_error,
        )

    async def run(self, operation: Callable[[int], Awaitable[T]]) -> T:
        """Run *operation* until it succeeds, fails terminally, or attempts run out.

        *operation* receives the 1-based attempt number. The last error is
        re-raised unchanged when the loop ends in ``FAILED_TERMINAL``.
        """
        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter_capped(self.base_delay, self.max_delay, self._rand),
            retry=retry_if_exception(self._retry_if),
            before_sleep=self._before_sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    self.attempt = attempt.retry_state.attempt_number
                    self._enter(RetryPhase.ATTEMPTING)
                    try:
                        result = await operation(self.attempt)
                    except Exception as exc:
                        self.last_error = exc
                        raise
        except Exception:
            self._enter(RetryPhase.FAILED_TERMINAL)
            raise
        self._enter(RetryPhase.SUCCEEDED)
        return result
