"""Tagged result values returned across pipeline stage boundaries.

Stages that can fail return ``Ok(value)`` or ``Err(kind, message)`` instead of
raising, so callers branch on an enumerated ``kind`` rather than on exception
text. Use structural pattern matching::

    match extract_text(data, password):
        case Ok(raw):
            ...
        case Err(kind=ExtractionErrorKind.PASSWORD_REQUIRED):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


@dataclass(frozen=True, slots=True)
class Ok[T]:
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err[K: StrEnum]:
    kind: K
    message: str

    @property
    def ok(self) -> bool:
        return False


type Result[T, K: StrEnum] = Ok[T] | Err[K]


__all__ = ["Ok", "Err", "Result"]
