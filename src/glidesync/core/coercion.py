"""Coercion of raw row values to declared column types.

Each declared type is a pydantic `TypeAdapter` in lax mode. The `Annotated`
validators only cover what lax mode does differently from a sync: booleans
are not numbers, commas are only thousands separators, numeric dates are
epoch milliseconds and naive datetimes are UTC.
"""

import re
from datetime import date, datetime, time, timezone
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BeforeValidator,
    ConfigDict,
    FiniteFloat,
    JsonValue,
    TypeAdapter,
    ValidationError,
)
from pydantic_core import from_json, to_json

# Commas are accepted only in groups of three digits
_GROUPED_NUMBER = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")


class CoercionError(ValueError):
    """Raised when a value cannot be converted to its declared type."""

    def __init__(self, value: Any, data_type: str, reason: str | None = None) -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot convert {value!r} to {data_type}{detail}")
        self.value = value
        self.data_type = data_type


def _stringify(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return to_json(value).decode()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return str(value)
    return value


def _number_input(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("booleans are not numbers")
    if isinstance(value, str):
        text = value.strip()
        if "," in text:
            if not _GROUPED_NUMBER.match(text):
                raise ValueError("commas are only allowed as thousands separators")
            text = text.replace(",", "")
        return text
    return value


def _boolean_input(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _date_input(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("booleans are not dates")
    if isinstance(value, (int, float)):
        # Epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError("timestamp out of range") from e
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        return value.strip()
    return value


def _assume_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _json_input(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return from_json(value)
    return value


String = Annotated[str, BeforeValidator(_stringify)]
Number = Annotated[int | FiniteFloat, BeforeValidator(_number_input)]
Boolean = Annotated[bool, BeforeValidator(_boolean_input)]
Date = Annotated[datetime, BeforeValidator(_date_input), AfterValidator(_assume_utc)]
JsonData = Annotated[JsonValue, BeforeValidator(_json_input)]

_ADAPTERS: dict[str, TypeAdapter] = {
    "string": TypeAdapter(String, config=ConfigDict(coerce_numbers_to_str=True)),
    "number": TypeAdapter(Number),
    "boolean": TypeAdapter(Boolean),
    "date": TypeAdapter(Date),
    "json": TypeAdapter(JsonData),
}


def coerce_value(value: Any, data_type: str) -> Any:
    """Convert a raw value to the Python representation of a declared type.

    None always passes through. Naive datetimes are taken to be UTC.

    Args:
        value: Raw value read from an endpoint.
        data_type: One of string, number, boolean, date, json.

    Returns:
        The converted value.

    Raises:
        CoercionError: If the value cannot be represented as the type.
    """
    if value is None:
        return None
    adapter = _ADAPTERS.get(data_type)
    if adapter is None:
        raise CoercionError(value, data_type, "unknown data type")
    try:
        return adapter.validate_python(value)
    except ValidationError as e:
        raise CoercionError(value, data_type, e.errors()[0]["msg"]) from e
