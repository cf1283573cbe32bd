"""Typed lookups into untyped upstream JSON.

Upstream bodies are plain ``dict`` objects decoded from JSON. ``lookup`` walks a
dotted path and reports whether the value was found, missing, or present with a
type other than the one the caller expects, so translation code can degrade per
field instead of failing the whole response.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from ollamagate.core.errors import TranslationError

T = TypeVar("T")

ABSENT = "absent"
WRONG_TYPE = "wrong_type"


@dataclass(frozen=True, slots=True)
class FieldValue(Generic[T]):
    path: str
    value: T | None = None
    problem: str | None = None

    @property
    def ok(self) -> bool:
        return self.problem is None

    def or_default(self, default: T) -> T:
        if self.problem is None and self.value is not None:
            return self.value
        return default

    def require(self) -> T:
        if self.problem is not None or self.value is None:
            raise TranslationError(self.path, self.problem or ABSENT)
        return self.value


def _matches(value: Any, expected: type | tuple[type, ...]) -> bool:
    # JSON 里 true/false 不能当作数字
    if isinstance(value, bool):
        types = expected if isinstance(expected, tuple) else (expected,)
        return bool in types
    return isinstance(value, expected)


def lookup(obj: Any, path: str, expected: type | tuple[type, ...]) -> FieldValue[Any]:
    current = obj
    for key in path.split("."):
        if not isinstance(current, dict):
            return FieldValue(path=path, problem=WRONG_TYPE if current is not None else ABSENT)
        if key not in current or current[key] is None:
            return FieldValue(path=path, problem=ABSENT)
        current = current[key]
    if not _matches(current, expected):
        return FieldValue(path=path, problem=WRONG_TYPE)
    return FieldValue(path=path, value=current)


def as_number(value: Any) -> float | None:
    """Return ``value`` as float when it is a JSON number, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None
