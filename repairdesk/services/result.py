from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")

# error_code values shared by services and routers
NOT_FOUND = "not_found"
INVALID_STATE = "invalid_state"
INVALID_INPUT = "invalid_input"


@dataclass
class Result(Generic[T]):
    """Outcome of a business operation that can fail without it being a bug."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    @staticmethod
    def not_found(entity: str) -> "Result[Any]":
        return Result.failure(f"{entity} not found", NOT_FOUND)

    @staticmethod
    def invalid_state(error: str) -> "Result[Any]":
        return Result.failure(error, INVALID_STATE)

    @staticmethod
    def invalid_input(error: str) -> "Result[Any]":
        return Result.failure(error, INVALID_INPUT)

    def forward(self) -> "Result[Any]":
        """Re-type a failure so a caller can return it as its own result."""
        if self.ok:
            raise ValueError("only failed results can be forwarded")
        return Result.failure(self.error, self.error_code)
