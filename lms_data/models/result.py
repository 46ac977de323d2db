"""Tagged success/failure values returned by repositories instead of raising."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, Literal, TypeVar

if TYPE_CHECKING:
    from lms_data.errors import AppError

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T
    success: Literal[True] = True


@dataclass(frozen=True)
class Failure:
    error: "AppError"
    success: Literal[False] = False


Result = Success[T] | Failure


def success(data: T) -> Success[T]:
    return Success(data)


def failure(error: "AppError") -> Failure:
    return Failure(error)
