# llminster: Explicit three-way result used by the conversation engine and the model capability, so callers can tell "no history yet" apart from "something went wrong".

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """The operation produced a value."""

    value: T


@dataclass(frozen=True)
class Empty:
    """Nothing to return yet (e.g. a session without turns). Not an error."""


@dataclass(frozen=True)
class Failure:
    """The operation failed; reason is a human-readable message."""

    reason: str


Result = Union[Success[T], Empty, Failure]
