"""Tagged success/failure values returned across the exchange boundary."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from .errors import ErrorKind, RelevError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: RelevError

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    def unwrap(self) -> Any:
        raise self.error


Result = Union[Ok[T], Err]


def as_result(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[Result[T]]]:
    """
    Wrap a coroutine so that ``RelevError`` becomes ``Err`` and a return value becomes ``Ok``.

    Anything that is not a ``RelevError`` propagates unchanged; those are bugs,
    not exchange failures.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Result[T]:
        try:
            return Ok(await func(*args, **kwargs))
        except RelevError as exc:
            return Err(exc)

    return wrapper


__all__ = ["Err", "Ok", "Result", "as_result"]
