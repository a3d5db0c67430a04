"""Compiled field schemas.

A Schema is built once from a declarative field mapping and then used by
every document of its entity type to apply defaults, cast and normalise
values, and check declared constraints.
"""

import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from bson import Binary, Decimal128, ObjectId
from bson.errors import InvalidId

from .errors import FieldError
from .type_mapper import ArrayOf, Mixed, map_to_storage_type

LIFECYCLE_EVENTS = ("validate", "save", "find", "find_one", "update", "delete_one")

RESERVED_KEYS = ("_id", "created_at", "updated_at")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the stores hand back"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _with_message(option: Any) -> Tuple[Any, Optional[str]]:
    """Split ``value`` or ``(value, message)`` option forms"""
    if isinstance(option, (tuple, list)) and len(option) == 2 and isinstance(option[1], str):
        return option[0], option[1]
    return option, None


def _type_name(storage_type: Any) -> str:
    if isinstance(storage_type, ArrayOf):
        return f"[{_type_name(storage_type.item_type)}]"
    if isinstance(storage_type, SchemaField):
        return _type_name(storage_type.type)
    if storage_type is float:
        return "Number"
    return getattr(storage_type, "__name__", str(storage_type))


def cast_value(storage_type: Any, value: Any) -> Any:
    """Cast ``value`` to ``storage_type``; raises TypeError/ValueError on failure"""
    if value is None or storage_type is None or storage_type is Mixed:
        return value

    if storage_type is str:
        if isinstance(value, str):
            return value
        if isinstance(value, (bool, int, float, Decimal, ObjectId)):
            return str(value)
        raise TypeError(f"cannot cast {type(value).__name__} to string")

    if storage_type is float:
        if isinstance(value, bool):
            raise TypeError("booleans are not numbers")
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if math.isnan(value):
                raise ValueError("NaN is not a number")
            return value
        if isinstance(value, Decimal128):
            return float(value.to_decimal())
        if isinstance(value, str) and value.strip():
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                result = float(text)
                if math.isnan(result):
                    raise ValueError("NaN is not a number")
                return result
        raise TypeError(f"cannot cast {type(value).__name__} to number")

    if storage_type is bool:
        if isinstance(value, bool):
            return value
        if value in (1, 0) and not isinstance(value, float):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0", "yes", "no"):
            return value.strip().lower() in ("true", "1", "yes")
        raise TypeError(f"cannot cast {value!r} to boolean")

    if storage_type is datetime:
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                return value.astimezone(timezone.utc).replace(tzinfo=None)
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            return cast_value(datetime, parsed)
        raise TypeError(f"cannot cast {type(value).__name__} to date")

    if storage_type is ObjectId:
        if isinstance(value, ObjectId):
            return value
        if isinstance(value, str):
            try:
                return ObjectId(value)
            except InvalidId as e:
                raise ValueError(str(e))
        raise TypeError(f"cannot cast {type(value).__name__} to ObjectId")

    if storage_type is Decimal128:
        if isinstance(value, Decimal128):
            return value
        try:
            return Decimal128(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValueError(str(e))

    if storage_type is Binary:
        if isinstance(value, Binary):
            return value
        if isinstance(value, (bytes, bytearray)):
            return Binary(bytes(value))
        raise TypeError(f"cannot cast {type(value).__name__} to binary")

    if storage_type is dict:
        if isinstance(value, dict) and all(isinstance(k, str) for k in value):
            return value
        raise TypeError("maps need string keys")

    if storage_type is list:
        return list(value) if isinstance(value, (list, tuple)) else [value]

    if isinstance(storage_type, type):
        return value if isinstance(value, storage_type) else storage_type(value)
    return value


class SchemaField:
    """A leaf path: its concrete type plus declared constraints"""

    def __init__(self, name: str, path: str, storage_type: Any, options: Dict[str, Any]):
        self.name = name
        self.path = path
        self.type = storage_type
        self.options = options

        required, self.required_message = _with_message(options.get("required", False))
        self.required = bool(required)
        self.unique = bool(options.get("unique", False))
        self.index = options.get("index", False)
        self.sparse = bool(options.get("sparse", False))
        self.trim = bool(options.get("trim", False))
        self.lowercase = bool(options.get("lowercase", False))
        self.uppercase = bool(options.get("uppercase", False))
        self.selected = options.get("select", True) is not False
        self.minlength, self.minlength_message = _with_message(options.get("minlength"))
        self.maxlength, self.maxlength_message = _with_message(options.get("maxlength"))
        self.min, self.min_message = _with_message(options.get("min"))
        self.max, self.max_message = _with_message(options.get("max"))

        match, self.match_message = _with_message(options.get("match"))
        self.match = re.compile(match) if isinstance(match, str) else match

        enum = options.get("enum")
        self.enum_message = None
        if isinstance(enum, dict):
            self.enum_message = enum.get("message")
            enum = enum.get("values")
        self.enum = list(enum) if enum is not None else None

        self.validator = None
        self.validator_message = None
        if "validate" in options:
            validate = options["validate"]
            if callable(validate):
                self.validator = validate
            else:
                self.validator = validate["validator"]
                self.validator_message = validate.get("message")

    @property
    def is_array(self) -> bool:
        return isinstance(self.type, ArrayOf)

    def default_value(self) -> Any:
        if "default" in self.options:
            default = self.options["default"]
            return default() if callable(default) else default
        if self.is_array:
            return []
        return _MISSING

    def _normalise(self, value: Any) -> Any:
        if isinstance(value, str):
            if self.trim:
                value = value.strip()
            if self.lowercase:
                value = value.lower()
            if self.uppercase:
                value = value.upper()
        return value

    def check_required(self, value: Any) -> Optional[FieldError]:
        if self.required and (value is None or value is _MISSING or value == ""):
            message = self.required_message or f"Path `{self.path}` is required."
            return FieldError(self.path, message, "required", None if value is _MISSING else value)
        return None

    def validate(self, value: Any, errors: Dict[str, FieldError], path: Optional[str] = None) -> Any:
        """Cast, normalise and check ``value``; returns the stored form"""
        path = path or self.path
        if value is _MISSING or value is None:
            error = self.check_required(value)
            if error:
                error.path = path
                errors[path] = error
            return None if value is _MISSING else value

        if self.is_array:
            return self._validate_array(value, errors, path)

        try:
            value = cast_value(self.type, value)
        except (TypeError, ValueError) as e:
            errors[path] = FieldError(
                path,
                f'Cast to {_type_name(self.type)} failed for value "{value}" at path "{path}": {e}',
                "cast",
                value,
            )
            return value

        value = self._normalise(value)
        error = self.check_required(value) or self._check_constraints(value, path)
        if error:
            error.path = path
            errors[path] = error
        return value

    def _validate_array(self, value: Any, errors: Dict[str, FieldError], path: str) -> List[Any]:
        items = list(value) if isinstance(value, (list, tuple)) else [value]
        item_type = self.type.item_type
        result = []
        for i, item in enumerate(items):
            item_path = f"{path}.{i}"
            if isinstance(item_type, Schema):
                if not isinstance(item, dict):
                    errors[item_path] = FieldError(item_path, f"Cast to Embedded failed at path \"{item_path}\"", "cast", item)
                    result.append(item)
                    continue
                result.append(item_type.validate(item_type.apply_defaults(item), errors, prefix=item_path))
            elif isinstance(item_type, SchemaField):
                result.append(item_type.validate(item, errors, path=item_path))
            else:
                try:
                    result.append(cast_value(item_type, item))
                except (TypeError, ValueError) as e:
                    errors[item_path] = FieldError(
                        item_path,
                        f'Cast to {_type_name(item_type)} failed for value "{item}" at path "{item_path}": {e}',
                        "cast",
                        item,
                    )
                    result.append(item)

        if self.validator is not None and not self.validator(result):
            errors[path] = FieldError(
                path, self.validator_message or f"Validator failed for path `{path}`", "user defined", result
            )
        return result

    def _check_constraints(self, value: Any, path: str) -> Optional[FieldError]:
        if self.minlength is not None and isinstance(value, str) and len(value) < self.minlength:
            return FieldError(
                path,
                self.minlength_message or f"Path `{path}` is shorter than the minimum allowed length ({self.minlength}).",
                "minlength",
                value,
            )
        if self.maxlength is not None and isinstance(value, str) and len(value) > self.maxlength:
            return FieldError(
                path,
                self.maxlength_message or f"Path `{path}` is longer than the maximum allowed length ({self.maxlength}).",
                "maxlength",
                value,
            )
        if self.match is not None and isinstance(value, str) and not self.match.search(value):
            return FieldError(path, self.match_message or f"Path `{path}` is invalid ({value}).", "regexp", value)
        if self.enum is not None and value not in self.enum:
            return FieldError(
                path, self.enum_message or f"`{value}` is not a valid enum value for path `{path}`.", "enum", value
            )
        if self.min is not None and value < self.min:
            return FieldError(
                path, self.min_message or f"Path `{path}` ({value}) is less than minimum allowed value ({self.min}).",
                "min", value,
            )
        if self.max is not None and value > self.max:
            return FieldError(
                path, self.max_message or f"Path `{path}` ({value}) is more than maximum allowed value ({self.max}).",
                "max", value,
            )
        if self.validator is not None and not self.validator(value):
            return FieldError(
                path, self.validator_message or f"Validator failed for path `{path}` with value `{value}`",
                "user defined", value,
            )
        return None

    def __repr__(self) -> str:
        return f"SchemaField({self.path!r}, {_type_name(self.type)})"


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


_MISSING = _Missing()


class Schema:
    """
    Field tree for one entity type or subdocument.

    ``fields`` maps each key to a SchemaField (leaf) or a nested Schema.
    """

    def __init__(self, definition: Dict[str, Any], options: Optional[Dict[str, Any]] = None, prefix: str = ""):
        self.prefix = prefix
        self.options: Dict[str, Any] = dict(options) if options is not None else {"timestamps": True}
        self.fields: Dict[str, Any] = {}
        for name, spec in definition.items():
            self.fields[name] = self._compile_field(name, spec)

    def _path(self, name: str) -> str:
        return f"{self.prefix}.{name}" if self.prefix else name

    def _subdocument_compiler(self, name: str, path: str) -> Callable[[Dict[str, Any]], Any]:
        def compile_subdocument(definition: Dict[str, Any]) -> Any:
            # array elements declared as {"type": ..., <constraints>} stay leaves
            if "type" in definition and not isinstance(definition["type"], dict):
                return SchemaField(
                    name, path, map_to_storage_type(definition, compile_subdocument), definition
                )
            return Schema(definition, options={}, prefix=path)
        return compile_subdocument

    def _compile_field(self, name: str, spec: Any) -> Any:
        path = self._path(name)
        compiler = self._subdocument_compiler(name, path)

        if isinstance(spec, dict) and "type" in spec:
            storage_type = map_to_storage_type(spec, compiler)
            if isinstance(storage_type, Schema):
                return storage_type
            return SchemaField(name, path, storage_type, spec)

        # nested objects and bare arrays go through the same mapping
        storage_type = map_to_storage_type({"type": spec}, compiler)
        if isinstance(storage_type, Schema):
            return storage_type
        return SchemaField(name, path, storage_type, {})

    # ---- introspection ----

    @property
    def timestamps(self) -> bool:
        return bool(self.options.get("timestamps", False))

    @property
    def strict(self) -> bool:
        return bool(self.options.get("strict", True))

    def iter_leaves(self) -> Iterator[SchemaField]:
        for node in self.fields.values():
            if isinstance(node, Schema):
                yield from node.iter_leaves()
            else:
                yield node

    def leaf_paths(self) -> List[str]:
        return [leaf.path for leaf in self.iter_leaves()]

    def node(self, path: str) -> Optional[Any]:
        """SchemaField or Schema at a dotted path (relative to this schema)"""
        current: Any = self
        for part in path.split("."):
            if not isinstance(current, Schema) or part not in current.fields:
                return None
            current = current.fields[part]
        return current

    def hidden_paths(self) -> List[str]:
        return [leaf.path for leaf in self.iter_leaves() if not leaf.selected]

    def field_indexes(self) -> List[Tuple[Dict[str, int], Dict[str, Any]]]:
        """Indexes implied by field-level ``unique``/``index`` declarations"""
        indexes = []
        for leaf in self.iter_leaves():
            if leaf.unique:
                options: Dict[str, Any] = {"unique": True}
                if leaf.sparse:
                    options["sparse"] = True
                indexes.append(({leaf.path: 1}, options))
            elif leaf.index:
                options = dict(leaf.index) if isinstance(leaf.index, dict) else {}
                if leaf.sparse:
                    options["sparse"] = True
                indexes.append(({leaf.path: 1}, options))
        return indexes

    # ---- data handling ----

    def apply_defaults(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Drop undeclared keys (strict mode) and fill in defaults, in place"""
        if self.strict:
            for key in list(data):
                if key not in self.fields and key not in RESERVED_KEYS:
                    del data[key]

        for name, node in self.fields.items():
            if isinstance(node, Schema):
                nested = data.get(name)
                if not isinstance(nested, dict):
                    nested = {}
                data[name] = node.apply_defaults(nested)
                continue
            if name not in data:
                default = node.default_value()
                if default is not _MISSING:
                    data[name] = default
            elif node.is_array and isinstance(node.type.item_type, Schema) and isinstance(data[name], list):
                data[name] = [
                    node.type.item_type.apply_defaults(item) if isinstance(item, dict) else item
                    for item in data[name]
                ]
        return data

    def validate(
        self,
        data: Dict[str, Any],
        errors: Dict[str, FieldError],
        prefix: Optional[str] = None,
        modified: Optional[Set[str]] = None,
        skip: Optional[Set[str]] = None,
    ) -> Dict[str, Any]:
        """
        Cast and check ``data`` in place, collecting one FieldError per path.

        Args:
            data: Document (or subdocument) contents
            errors: Collector, keyed by dotted path
            prefix: Path prefix when validating array elements
            modified: When given, only these leaf paths get full validation;
                every other path gets the required check only
            skip: Paths that were not loaded and must not be checked
        """
        for name, node in self.fields.items():
            if isinstance(node, Schema):
                nested = data.get(name)
                if isinstance(nested, dict):
                    node.validate(
                        nested, errors,
                        prefix=f"{prefix}.{name}" if prefix else None,
                        modified=modified, skip=skip,
                    )
                continue

            path = f"{prefix}.{name}" if prefix else node.path
            if skip and path in skip:
                continue
            value = data.get(name, _MISSING)
            if modified is not None and not _touches(path, modified):
                error = node.check_required(value)
                if error:
                    errors[path] = error
                continue
            result = node.validate(value, errors, path=path)
            if value is not _MISSING:
                data[name] = result
        return data


def _touches(path: str, modified: Set[str]) -> bool:
    return any(
        path == m or path.startswith(m + ".") or m.startswith(path + ".")
        for m in modified
    )
