"""Maps declarative field type tags onto concrete storage types.

Supports nested subdocuments and arrays; the subdocument compiler is passed
in by the caller so this module never imports the schema module.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from bson import Binary, Decimal128, ObjectId


class Mixed:
    """Arbitrary value, stored as given"""
    pass


class ArrayOf:
    """Repeated-element descriptor wrapping the element's storage type"""

    __slots__ = ("item_type",)

    def __init__(self, item_type: Any):
        self.item_type = item_type

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ArrayOf) and other.item_type == self.item_type

    def __repr__(self) -> str:
        name = getattr(self.item_type, "__name__", repr(self.item_type))
        return f"ArrayOf({name})"


TYPE_MAP: Dict[str, Any] = {
    "String": str,
    "Number": float,
    "Boolean": bool,
    "Date": datetime,
    "ObjectId": ObjectId,
    "Array": list,
    "Mixed": Mixed,
    "Buffer": Binary,
    "Decimal128": Decimal128,
    "Map": dict,
}


def map_to_storage_type(field: Dict[str, Any], schema_converter: Callable[[Dict[str, Any]], Any]) -> Optional[Any]:
    """
    Resolve ``field["type"]`` to a concrete storage type.

    Args:
        field: Field definition; only its ``type`` entry is inspected
        schema_converter: Compiles a nested field mapping into a subdocument schema

    Returns:
        A subdocument schema, an ArrayOf wrapper, a mapped primitive type,
        the unrecognised tag itself, or None when no type was given
    """
    field_type = field.get("type")

    if isinstance(field_type, dict):
        return schema_converter(field_type)

    if isinstance(field_type, list):
        if not field_type:
            return ArrayOf(Mixed)
        return ArrayOf(map_to_storage_type({"type": field_type[0]}, schema_converter))

    if field_type is None:
        return None

    if isinstance(field_type, str):
        return TYPE_MAP.get(field_type, field_type)
    return field_type
