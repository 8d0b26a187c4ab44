"""Tagged stage outcomes.

Stages hand the pipeline an ``Ok`` or an ``Err`` instead of raising, and the
pipeline decides whether an ``Err`` is absorbed or fatal.
"""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    reason: str
    source: str | None = None


StageResult = Union[Ok[T], Err]
