from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from sales_agent.services.errors import INVALID_STATE_CODES

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
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

    @property
    def is_invalid_state(self) -> bool:
        return not self.ok and self.error_code in INVALID_STATE_CODES

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
