"""
Discriminated command results.

HTTP callers get `{"success": true, "data": ...}` from the routers and
`{"success": false, "error": {...}}` from the exception handlers.
`run_command` gives in-process callers the same shape without raising.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import BaseAppException, UnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorInfo(BaseModel):
    kind: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class CommandResult(BaseModel, Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def ok(cls, data: Any = None) -> "CommandResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: BaseAppException) -> "CommandResult":
        return cls(success=False, error=ErrorInfo(**exc.to_dict()))


async def run_command(
    operation: Callable[..., Awaitable[Any]], *args, **kwargs
) -> CommandResult:
    """Выполнить команду и вернуть результат вместо исключения"""
    try:
        return CommandResult.ok(await operation(*args, **kwargs))
    except BaseAppException as e:
        logger.info(
            f"Command {operation.__name__} rejected: {e.kind}",
            extra={"operation": operation.__name__, "kind": e.kind},
        )
        return CommandResult.fail(e)
    except SQLAlchemyError as e:
        logger.error(
            f"Storage failure in {operation.__name__}: {str(e)}",
            extra={"operation": operation.__name__, "exception_type": type(e).__name__},
        )
        return CommandResult.fail(UnavailableError())
