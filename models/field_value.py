"""
Custom field value variants.

Remote custom fields come back as plain scalars, `{name}` refs (dropdowns,
members), `{label}` refs, or arrays of those. `parse_field_value` turns the raw
JSON into one of the variants below and `display_value` is the single reducer
used by previews and reports.
"""

from dataclasses import dataclass
from typing import Any, Union
import json


@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class NamedRef:
    name: str
    raw: Any = None


@dataclass(frozen=True)
class LabeledRef:
    label: str
    raw: Any = None


@dataclass(frozen=True)
class ListValue:
    items: tuple


@dataclass(frozen=True)
class RawObject:
    """Object without a name or label; displayed as JSON."""
    raw: Any


FieldValue = Union[Scalar, NamedRef, LabeledRef, ListValue, RawObject]


def parse_field_value(raw: Any) -> FieldValue:
    """Classify a raw API value into a FieldValue variant."""
    if isinstance(raw, (list, tuple)):
        return ListValue(items=tuple(parse_field_value(item) for item in raw))
    if isinstance(raw, dict):
        if raw.get("name"):
            return NamedRef(name=str(raw["name"]), raw=raw)
        if raw.get("label"):
            return LabeledRef(label=str(raw["label"]), raw=raw)
        return RawObject(raw=raw)
    return Scalar(value=raw)


def display_value(value: Any) -> str:
    """
    Reduce a field value to its display string.

    Accepts either a raw API value or an already parsed variant.
    None renders as an empty string.
    """
    if value is None:
        return ""
    if not isinstance(value, (Scalar, NamedRef, LabeledRef, ListValue, RawObject)):
        value = parse_field_value(value)

    if isinstance(value, NamedRef):
        return value.name
    if isinstance(value, LabeledRef):
        return value.label
    if isinstance(value, ListValue):
        return ", ".join(display_value(item) for item in value.items)
    if isinstance(value, RawObject):
        return json.dumps(value.raw, sort_keys=True)
    if value.value is None:
        return ""
    if isinstance(value.value, bool):
        return "true" if value.value else "false"
    if isinstance(value.value, float) and value.value.is_integer():
        return str(int(value.value))
    return str(value.value)


def has_value(raw: Any) -> bool:
    """A value is present unless the API returned null."""
    return raw is not None
