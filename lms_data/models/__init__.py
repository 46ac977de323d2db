from lms_data.models.cache import CacheConfig, CacheEntry, CacheStats
from lms_data.models.enums import (
    CacheStrategy,
    CourseStatus,
    DifficultyLevel,
    HookKind,
    HttpMethod,
    RetryPhase,
    SimuladoType,
    SortDirection,
)
from lms_data.models.http import HttpClientConfig, HttpResponse, RequestConfig
from lms_data.models.query import QueryParams, SortOptions
from lms_data.models.result import Failure, Result, Success, failure, success

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
    "CacheStrategy",
    "CourseStatus",
    "DifficultyLevel",
    "Failure",
    "HookKind",
    "HttpClientConfig",
    "HttpMethod",
    "HttpResponse",
    "QueryParams",
    "RequestConfig",
    "Result",
    "RetryPhase",
    "SimuladoType",
    "SortDirection",
    "SortOptions",
    "Success",
    "failure",
    "success",
]
