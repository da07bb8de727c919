"""
FeatureScript value model

Evaluation results come back as serialized FeatureScript values:

    {
      "btType": "com.belmonttech.serialize.fsvalue.BTFSValueArray",
      "value": [
        {
          "btType": "com.belmonttech.serialize.fsvalue.BTFSValueString",
          "value": "CAM Demo.nc",
          "typeTag": ""
        }
      ],
      "typeTag": ""
    }

Only strings, arrays and maps are modelled. Anything else parses to
FSUnrecognized so that callers see a tag mismatch instead of a crash.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from camel_gateway.app.services.onshape.errors import SchemaError

logger = logging.getLogger(__name__)

BT_STRING = "com.belmonttech.serialize.fsvalue.BTFSValueString"
BT_ARRAY = "com.belmonttech.serialize.fsvalue.BTFSValueArray"
BT_MAP = "com.belmonttech.serialize.fsvalue.BTFSValueMap"


@dataclass(frozen=True)
class FSString:
    value: str
    type_tag: str = ""


@dataclass(frozen=True)
class FSArray:
    items: Tuple["TypedValue", ...] = ()
    type_tag: str = ""


@dataclass(frozen=True)
class FSMap:
    entries: Tuple[Tuple["TypedValue", "TypedValue"], ...] = ()
    type_tag: str = ""


@dataclass(frozen=True)
class FSUnrecognized:
    bt_type: str
    raw: Any = field(default=None, compare=False)


TypedValue = Union[FSString, FSArray, FSMap, FSUnrecognized]


def _tag_name(value: Optional[TypedValue]) -> str:
    if value is None:
        return "null"
    if isinstance(value, FSUnrecognized):
        return value.bt_type
    return type(value).__name__


def parse_typed_value(raw: Any) -> TypedValue:
    """
    Decode a serialized FeatureScript value

    Args:
        raw: JSON object with btType / value / typeTag

    Returns:
        TypedValue variant

    Raises:
        SchemaError: If the object is not shaped like a serialized value
    """
    if not isinstance(raw, dict) or "btType" not in raw:
        raise SchemaError(f"Not a FeatureScript value: {raw!r:.200}")

    bt_type = raw["btType"]
    value = raw.get("value")
    type_tag = raw.get("typeTag") or ""

    if bt_type == BT_STRING:
        if not isinstance(value, str):
            raise SchemaError("String value without string payload")
        return FSString(value, type_tag)

    if bt_type == BT_ARRAY:
        if not isinstance(value, list):
            raise SchemaError("Array value without list payload")
        return FSArray(tuple(parse_typed_value(item) for item in value), type_tag)

    if bt_type == BT_MAP:
        if not isinstance(value, list):
            raise SchemaError("Map value without entry list")
        entries = []
        for entry in value:
            if not isinstance(entry, dict) or "key" not in entry or "value" not in entry:
                raise SchemaError("Map entry without key/value")
            entries.append((parse_typed_value(entry["key"]), parse_typed_value(entry["value"])))
        return FSMap(tuple(entries), type_tag)

    logger.warning(f"Unrecognized FeatureScript value type: {bt_type}")
    return FSUnrecognized(bt_type, raw)


def expect_string(value: Optional[TypedValue], what: str = "value") -> str:
    if not isinstance(value, FSString):
        raise SchemaError(f"Expected {what} to be a string, got {_tag_name(value)}")
    return value.value


def expect_array(value: Optional[TypedValue], what: str = "value") -> Tuple[TypedValue, ...]:
    if not isinstance(value, FSArray):
        raise SchemaError(f"Expected {what} to be an array, got {_tag_name(value)}")
    return value.items


def expect_map(value: Optional[TypedValue], what: str = "value") -> Tuple[Tuple[TypedValue, TypedValue], ...]:
    if not isinstance(value, FSMap):
        raise SchemaError(f"Expected {what} to be a map, got {_tag_name(value)}")
    return value.entries


def string_list(value: Optional[TypedValue], what: str = "value") -> List[str]:
    """Array of strings -> list of str"""
    return [expect_string(item, f"{what} item") for item in expect_array(value, what)]


def string_map(value: Optional[TypedValue], what: str = "value") -> Dict[str, str]:
    """Map of string -> string, insertion order preserved"""
    return {
        expect_string(key, f"{what} key"): expect_string(item, f"{what} entry")
        for key, item in expect_map(value, what)
    }
