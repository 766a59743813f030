"""Field value coercion and validation against field definitions.

Coercion is best effort: a value that can be converted safely to the
declared type is converted; anything else is kept raw and reported as a
FieldCoercionWarning. Neither coercion nor validation failures ever abort
the build of a resource.
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from deliverygraph.codes import IssueCode
from deliverygraph.contracts import FieldCoercionWarning
from .fields import FieldDefinition, FieldItems, FieldType
from .links import Link

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_REGEXP_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


class Location(BaseModel):
    """A geographic point value."""
    lat: float
    lon: float

    model_config = ConfigDict(frozen=True)

    def to_json(self) -> dict:
        return {"lat": self.lat, "lon": self.lon}


class CoercionError(ValueError):
    """Raised by a type coercer when a value has no safe conversion."""


def _type_name(value: Any) -> str:
    return type(value).__name__


def _coerce_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    raise CoercionError(f"cannot convert {_type_name(value)} to a string")


def _coerce_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise CoercionError("booleans are not integers")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        return int(value.strip())
    raise CoercionError(f"cannot convert {value!r} to an integer")


def _coerce_number(value: Any) -> Union[int, float]:
    if isinstance(value, bool):
        raise CoercionError("booleans are not numbers")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if _INTEGER_RE.match(text):
            return int(text)
        try:
            number = float(text)
        except ValueError:
            raise CoercionError(f"cannot convert {value!r} to a number")
        if not math.isfinite(number):
            raise CoercionError(f"non-finite number {value!r}")
        return number
    raise CoercionError(f"cannot convert {_type_name(value)} to a number")


def _coerce_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise CoercionError(f"cannot convert {value!r} to a boolean")


def _coerce_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise CoercionError(f"'{value}' is not an ISO 8601 date")
    raise CoercionError(f"cannot convert {_type_name(value)} to a date")


def _coerce_location(value: Any) -> Location:
    if isinstance(value, Location):
        return value
    if isinstance(value, dict) and "lat" in value and "lon" in value:
        try:
            return Location(lat=_coerce_number(value["lat"]), lon=_coerce_number(value["lon"]))
        except CoercionError:
            pass
    raise CoercionError(f"cannot convert {value!r} to a location ({{lat, lon}})")


def _coerce_link(value: Any) -> Link:
    if isinstance(value, Link):
        return value
    link = Link.from_raw(value)
    if link is None:
        raise CoercionError("value is not a link object")
    return link


def _coerce_object(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return value
    raise CoercionError(f"expected a JSON object, got {_type_name(value)}")


def _passthrough(value: Any) -> Any:
    return value


_COERCERS = {
    FieldType.SYMBOL: _coerce_string,
    FieldType.TEXT: _coerce_string,
    FieldType.RICH_TEXT: _coerce_object,
    FieldType.INTEGER: _coerce_integer,
    FieldType.NUMBER: _coerce_number,
    FieldType.BOOLEAN: _coerce_boolean,
    FieldType.DATE: _coerce_date,
    FieldType.LOCATION: _coerce_location,
    FieldType.LINK: _coerce_link,
    FieldType.OBJECT: _coerce_object,
    FieldType.UNKNOWN: _passthrough,
}


def _check_link_type(link: Link, expected: Optional[str]) -> None:
    if expected is not None and link.link_type != expected:
        raise CoercionError(f"expected a link to {expected}, got a link to {link.link_type}")


def coerce_value(
    field: FieldDefinition,
    value: Any,
    locale: Optional[str] = None,
) -> Tuple[Any, List[FieldCoercionWarning]]:
    """Coerce a raw value to the type declared by field.

    Returns:
        (value, warnings): the converted value, or the raw value plus a
        warning when no safe conversion exists. None stays None.
    """
    warnings: List[FieldCoercionWarning] = []
    if value is None:
        return None, warnings

    def warn(expected: str, raw: Any, reason: str) -> None:
        warnings.append(FieldCoercionWarning(
            field_id=field.id,
            locale=locale,
            expected_type=expected,
            actual_type=_type_name(raw),
            message=reason,
        ))

    if field.type == FieldType.ARRAY:
        if not isinstance(value, list):
            warn(FieldType.ARRAY.value, value, f"expected a list, got {_type_name(value)}")
            return value, warnings
        if field.items is None:
            return list(value), warnings
        result = []
        for index, item in enumerate(value):
            try:
                result.append(_coerce_item(field.items, item))
            except CoercionError as exc:
                warn(field.items.type.value, item, f"item {index}: {exc}")
                result.append(item)
        return result, warnings

    try:
        coerced = _COERCERS[field.type](value)
        if field.type == FieldType.LINK:
            _check_link_type(coerced, field.link_type)
        return coerced, warnings
    except CoercionError as exc:
        warn(field.type.value, value, str(exc))
        return value, warnings


def _coerce_item(items: FieldItems, value: Any) -> Any:
    coerced = _COERCERS[items.type](value)
    if items.type == FieldType.LINK:
        _check_link_type(coerced, items.link_type)
    return coerced


def _measure(value: Any) -> Optional[int]:
    if isinstance(value, (str, list)):
        return len(value)
    return None


def _check_rule(rule: Dict[str, Any], value: Any) -> Optional[str]:
    """Check a single validation rule, returning a failure message or None.

    Rules this client does not know are ignored.
    """
    if "in" in rule:
        allowed = rule["in"]
        if isinstance(allowed, list) and value not in allowed:
            return f"value {value!r} is not one of {allowed}"
    if "size" in rule and isinstance(rule["size"], dict):
        size = _measure(value)
        low, high = rule["size"].get("min"), rule["size"].get("max")
        if size is not None:
            if low is not None and size < low:
                return f"size {size} is below the minimum of {low}"
            if high is not None and size > high:
                return f"size {size} is above the maximum of {high}"
    if "range" in rule and isinstance(rule["range"], dict):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            low, high = rule["range"].get("min"), rule["range"].get("max")
            if low is not None and value < low:
                return f"value {value} is below the minimum of {low}"
            if high is not None and value > high:
                return f"value {value} is above the maximum of {high}"
    if "regexp" in rule and isinstance(rule["regexp"], dict) and isinstance(value, str):
        pattern = rule["regexp"].get("pattern")
        if isinstance(pattern, str):
            flags = 0
            for flag in rule["regexp"].get("flags") or "":
                flags |= _REGEXP_FLAGS.get(flag, 0)
            try:
                if re.search(pattern, value, flags) is None:
                    return f"value does not match pattern {pattern!r}"
            except re.error:
                return None
    return None


def _run_rules(rules: Sequence[Dict[str, Any]], value: Any) -> List[str]:
    failures = []
    for rule in rules:
        if isinstance(rule, dict):
            message = _check_rule(rule, value)
            if message is not None:
                failures.append(message)
    return failures


def apply_validations(
    field: FieldDefinition,
    value: Any,
    locale: Optional[str] = None,
) -> List[FieldCoercionWarning]:
    """Apply the field's validation rules to a coerced value.

    Supported rules: in, size, range, regexp. Failures are reported as
    VALIDATION_FAILED warnings, never raised.
    """
    if value is None:
        return []
    messages = _run_rules(field.validations, value)
    if field.type == FieldType.ARRAY and field.items is not None and isinstance(value, list):
        for index, item in enumerate(value):
            messages.extend(f"item {index}: {message}" for message in _run_rules(field.items.validations, item))
    return [
        FieldCoercionWarning(
            code=IssueCode.VALIDATION_FAILED,
            field_id=field.id,
            locale=locale,
            expected_type=field.type.value,
            actual_type=_type_name(value),
            message=message,
        )
        for message in messages
    ]
