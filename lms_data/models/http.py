from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lms_data.models.enums import HttpMethod

T = TypeVar("T")


class HttpClientConfig(BaseModel):
    """Validated configuration for one :class:`~lms_data.clients.http.HttpClient`."""

    model_config = ConfigDict(frozen=True)

    base_url: str = ""
    timeout: float = Field(default=30.0, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)
    max_retry_delay: float = Field(default=30.0, gt=0)
    headers: dict[str, str] = {}

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class RequestConfig(BaseModel):
    """Per-call request description. Interceptors receive and may mutate it."""

    method: HttpMethod
    url: str
    headers: dict[str, str] = {}
    params: dict[str, Any] = {}
    data: Any = None
    timeout: float = Field(default=30.0, gt=0)
    request_id: str | None = None


class HttpResponse(BaseModel, Generic[T]):
    data: T
    status: int
    status_text: str = ""
    headers: dict[str, str] = {}
    request_id: str | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300
