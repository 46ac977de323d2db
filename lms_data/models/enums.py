from enum import StrEnum


class HttpMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class CacheStrategy(StrEnum):
    MEMORY = "memory"
    LOCAL_STORAGE = "localStorage"
    SESSION_STORAGE = "sessionStorage"
    INDEXED_DB = "indexedDB"


class HookKind(StrEnum):
    REQUEST = "request"
    REQUEST_ERROR = "request_error"
    RESPONSE = "response"
    RESPONSE_ERROR = "response_error"


class RetryPhase(StrEnum):
    ATTEMPTING = "attempting"
    SLEEPING = "sleeping"
    SUCCEEDED = "succeeded"
    FAILED_TERMINAL = "failed_terminal"


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


class CourseStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class SimuladoType(StrEnum):
    PRACTICE = "practice"
    EXAM = "exam"
    QUIZ = "quiz"
    ASSESSMENT = "assessment"


class DifficultyLevel(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
