"""
Tagged value model for schema-less record fields.

Record fields arrive as arbitrary JSON. Each one is wrapped in a `Value`
that remembers its kind, so comparisons and text rendering go through
explicit conversions instead of implicit coercion.
"""

from __future__ import annotations

import datetime
import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class ValueKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"


@dataclass(frozen=True)
class Value:
    kind: ValueKind
    data: Any = None

    @classmethod
    def of(cls, raw: Any) -> "Value":
        if isinstance(raw, Value):
            return raw
        if raw is None:
            return NULL
        # bool is a subclass of int and must be checked first
        if isinstance(raw, bool):
            return cls(ValueKind.BOOLEAN, raw)
        if isinstance(raw, (int, float)):
            return cls(ValueKind.NUMBER, raw)
        if isinstance(raw, str):
            return cls(ValueKind.TEXT, raw)
        if isinstance(raw, (datetime.datetime, datetime.date)):
            return cls(ValueKind.DATE, raw)
        if isinstance(raw, (list, tuple)):
            return cls(ValueKind.ARRAY, tuple(cls.of(item) for item in raw))
        if isinstance(raw, Mapping):
            return cls(ValueKind.OBJECT, tuple((str(k), cls.of(v)) for k, v in raw.items()))
        return cls(ValueKind.TEXT, str(raw))

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    def is_empty(self) -> bool:
        """Falsy scalars and whitespace-only text count as empty."""
        if self.kind is ValueKind.NULL:
            return True
        if self.kind is ValueKind.BOOLEAN:
            return self.data is False
        if self.kind is ValueKind.NUMBER:
            return self.data == 0 or (isinstance(self.data, float) and math.isnan(self.data))
        if self.kind is ValueKind.TEXT:
            return self.data.strip() == ""
        return False

    def as_number(self) -> Optional[float]:
        """Numeric view of the value, or None when it is not a number."""
        if self.kind is ValueKind.NUMBER:
            number = float(self.data)
            return None if math.isnan(number) else number
        if self.kind is ValueKind.BOOLEAN:
            return 1.0 if self.data else 0.0
        if self.kind is ValueKind.TEXT:
            text = self.data.strip()
            if text == "":
                return 0.0
            try:
                number = float(text)
            except ValueError:
                return None
            return None if math.isnan(number) else number
        if self.kind is ValueKind.DATE:
            moment = self.data
            if not isinstance(moment, datetime.datetime):
                moment = datetime.datetime(moment.year, moment.month, moment.day, tzinfo=datetime.timezone.utc)
            elif moment.tzinfo is None:
                moment = moment.replace(tzinfo=datetime.timezone.utc)
            return moment.timestamp() * 1000.0
        return None

    def as_text(self) -> str:
        if self.kind is ValueKind.NULL:
            return "null"
        if self.kind is ValueKind.TEXT:
            return self.data
        if self.kind is ValueKind.BOOLEAN:
            return "true" if self.data else "false"
        if self.kind is ValueKind.NUMBER:
            return _number_text(self.data)
        if self.kind is ValueKind.DATE:
            return self.data.isoformat()
        if self.kind is ValueKind.ARRAY:
            return ",".join("" if item.is_null else item.as_text() for item in self.data)
        return json.dumps(self.to_python(), separators=(",", ":"), default=str)

    def strict_equals(self, other: Any) -> bool:
        """Kind and payload must both match; `1` never equals `True` or `"1"`."""
        other_value = Value.of(other)
        if self.kind is not other_value.kind:
            return False
        if self.kind is ValueKind.NUMBER:
            return float(self.data) == float(other_value.data)
        if self.kind is ValueKind.OBJECT:
            return dict(self.data) == dict(other_value.data)
        return self.data == other_value.data

    def to_python(self) -> Any:
        if self.kind is ValueKind.ARRAY:
            return [item.to_python() for item in self.data]
        if self.kind is ValueKind.OBJECT:
            return {key: item.to_python() for key, item in self.data}
        return self.data

    def __str__(self) -> str:
        return self.as_text()


NULL = Value(ValueKind.NULL, None)


def _number_text(number: Any) -> str:
    if isinstance(number, float):
        if math.isnan(number):
            return "NaN"
        if math.isinf(number):
            return "Infinity" if number > 0 else "-Infinity"
        if number.is_integer() and abs(number) < 1e21:
            return str(int(number))
    return str(number)


def fields_from_raw(raw: Mapping[str, Any] | None) -> Dict[str, Value]:
    """Build the ordered field map of a record from its raw JSON fields."""
    if not raw:
        return {}
    return {str(key): Value.of(item) for key, item in raw.items()}


def fields_to_python(fields: Mapping[str, Value]) -> Dict[str, Any]:
    return {key: item.to_python() for key, item in fields.items()}
