"""
Plain-data views returned by the facade.

Every facade result is built from frozen DTOs and flattened here into
JSON-compatible values: ``Decimal`` to a normalized string, ``UUID`` to
its string form, enums to their canonical value, datetimes to ISO 8601.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def decimal_str(value: Decimal) -> str:
    """``Decimal('400000.000000000')`` -> ``'400000'``."""
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Decimal):
        return decimal_str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    raise TypeError(f"Cannot convert {type(value).__name__} to a JSON value")
