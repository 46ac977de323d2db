"""Interceptor pipeline: tagged hooks run in registration order around each attempt."""

import inspect
import logging
import random
import time
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from lms_data.models.enums import HookKind
from lms_data.models.http import HttpResponse, RequestConfig

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})
REDACTED = "[REDACTED]"

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"

Handler = Callable[[Any], Any | Awaitable[Any]]


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_B36[rem])
    return sign + "".join(reversed(digits))


def generate_request_id() -> str:
    """Return an ID of the form ``req_{b36 ms timestamp}_{b36 random}``."""
    timestamp = to_base36(int(time.time() * 1000))
    random_part = to_base36(random.getrandbits(64))
    return f"req_{timestamp}_{random_part}"


def redact_headers(headers: dict[str, str] | None) -> dict[str, str]:
    """Copy *headers* with credential-bearing values replaced."""
    if not headers:
        return {}
    return {
        key: REDACTED if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


@dataclass(frozen=True)
class Interceptor:
    """One hook in the pipeline.

    The handler's contract depends on *kind*:

    - ``REQUEST``: receives the :class:`RequestConfig`; may mutate it and/or
      return a replacement. Raising aborts the attempt.
    - ``REQUEST_ERROR``: observes the exception that aborted a request hook.
    - ``RESPONSE``: receives the :class:`HttpResponse`; may return a replacement.
    - ``RESPONSE_ERROR``: observes a failed attempt. Its own failures are
      logged and never replace the original error.

    Handlers may be plain functions or coroutine functions.
    """

    kind: HookKind
    handler: Handler
    name: str = ""


async def _call(handler: Handler, arg: Any) -> Any:
    result = handler(arg)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass
class InterceptorChain:
    """Ordered collection of interceptors, filtered by kind at run time."""

    _interceptors: list[Interceptor] = field(default_factory=list)

    def add(self, interceptor: Interceptor) -> Interceptor:
        self._interceptors.append(interceptor)
        return interceptor

    def remove(self, interceptor: Interceptor) -> bool:
        try:
            self._interceptors.remove(interceptor)
        except ValueError:
            return False
        return True

    def of_kind(self, kind: HookKind) -> Iterator[Interceptor]:
        return (i for i in list(self._interceptors) if i.kind == kind)

    def __len__(self) -> int:
        return len(self._interceptors)

    async def run_request(self, config: RequestConfig) -> RequestConfig:
        for interceptor in self.of_kind(HookKind.REQUEST):
            try:
                returned = await _call(interceptor.handler, config)
            except Exception as exc:
                await self.run_request_error(exc)
                raise
            if isinstance(returned, RequestConfig):
                config = returned
        return config

    async def run_request_error(self, error: Exception) -> None:
        for interceptor in self.of_kind(HookKind.REQUEST_ERROR):
            try:
                await _call(interceptor.handler, error)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Request error interceptor %r failed", interceptor.name, exc_info=True,
                )

    async def run_response(self, response: HttpResponse) -> HttpResponse:
        for interceptor in self.of_kind(HookKind.RESPONSE):
            returned = await _call(interceptor.handler, response)
            if isinstance(returned, HttpResponse):
                response = returned
        return response

    async def run_response_error(self, error: Exception) -> None:
        for interceptor in self.of_kind(HookKind.RESPONSE_ERROR):
            try:
                await _call(interceptor.handler, error)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Response error interceptor %r failed", interceptor.name, exc_info=True,
                )
