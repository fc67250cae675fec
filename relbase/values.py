"""Typed property values.

Everything read from frontmatter (or handed over by a host query layer) is
unwrapped exactly once, at the input boundary, into one of three variants:
``NullValue``, ``ScalarValue`` or ``ListValue``. Downstream code only ever
sees these.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Union


@dataclass(frozen=True)
class NullValue:
    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class ScalarValue:
    value: Union[str, int, float, bool]


@dataclass(frozen=True)
class ListValue:
    items: tuple["PropertyValue", ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


PropertyValue = Union[NullValue, ScalarValue, ListValue]

NULL = NullValue()


def unwrap_value(raw: Any) -> PropertyValue:
    """Convert a raw frontmatter/host value into a PropertyValue.

    Host wrapper objects are recognised by shape only: anything exposing a
    ``data`` attribute is unwrapped recursively.
    """
    if raw is None:
        return NULL
    if isinstance(raw, (NullValue, ScalarValue, ListValue)):
        return raw
    if isinstance(raw, bool):
        return ScalarValue(raw)
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and math.isnan(raw):
            return NULL
        return ScalarValue(raw)
    if isinstance(raw, str):
        return ScalarValue(raw)
    if isinstance(raw, (date, datetime)):
        return ScalarValue(raw.isoformat())
    if isinstance(raw, (list, tuple)):
        return ListValue(tuple(unwrap_value(item) for item in raw))
    if isinstance(raw, dict):
        return ScalarValue(str(raw))
    if hasattr(raw, "data"):
        return unwrap_value(raw.data)
    return ScalarValue(str(raw))


def to_plain(value: PropertyValue) -> Any:
    """Inverse of ``unwrap_value`` for YAML serialization."""
    if isinstance(value, ListValue):
        return [to_plain(item) for item in value.items]
    if isinstance(value, ScalarValue):
        return value.value
    return None


def is_empty(value: PropertyValue) -> bool:
    """Null, blank string, or empty list."""
    if isinstance(value, NullValue):
        return True
    if isinstance(value, ScalarValue):
        return isinstance(value.value, str) and value.value.strip() == ""
    return len(value.items) == 0


def scalar_text(value: PropertyValue) -> str | None:
    """Return the string payload of a string scalar, else None."""
    if isinstance(value, ScalarValue) and isinstance(value.value, str):
        return value.value
    return None


def string_items(value: PropertyValue) -> list[str] | None:
    """Return list elements as strings when every element is a string scalar."""
    if not isinstance(value, ListValue):
        return None
    items: list[str] = []
    for item in value.items:
        text = scalar_text(item)
        if text is None:
            return None
        items.append(text)
    return items
