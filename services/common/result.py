"""
Typed outcomes for operations whose failure is part of normal flow:
a provider rejecting a send, a campaign that is already running, an
automation webhook returning 502. Programming errors still raise.
"""

from typing import TypeVar, Generic, Optional, Any, Dict, Union
from dataclasses import dataclass
from enum import Enum

T = TypeVar('T')


class ErrorCode(str, Enum):
    NOT_FOUND = 'NOT_FOUND'
    ALREADY_RUNNING = 'ALREADY_RUNNING'
    TRIGGER_ACTION_FAILURE = 'TRIGGER_ACTION_FAILURE'
    INVALID_DEFINITION = 'INVALID_DEFINITION'
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    DISPATCH_ABORTED = 'DISPATCH_ABORTED'


@dataclass
class Result(Generic[T]):
    """
    Either data or an error message with a machine-readable code.

        result = dispatcher.execute(campaign_id)
        if result.is_failure and result.error_code == ErrorCode.ALREADY_RUNNING.value:
            ...
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def success(cls, data: T = None, metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def failure(cls, error: str, code: Optional[Union[ErrorCode, str]] = None,
                metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        """Enum codes are stored by value so results serialize as plain JSON"""
        if isinstance(code, ErrorCode):
            code = code.value
        return cls(success=False, error=error, error_code=code, metadata=metadata)

    @property
    def is_success(self) -> bool:
        return self.success

    @property
    def is_failure(self) -> bool:
        return not self.success

    def unwrap(self) -> T:
        if self.is_failure:
            raise ValueError(f"Cannot unwrap a failure result: {self.error}")
        return self.data

    def error_body(self) -> Dict[str, Any]:
        """JSON body for an API error response"""
        return {'error': self.error, 'code': self.error_code}

    def __bool__(self) -> bool:
        return self.is_success

    def __repr__(self) -> str:
        if self.is_success:
            return f"Result.success(data={self.data!r})"
        return f"Result.failure(error={self.error!r}, code={self.error_code!r})"
