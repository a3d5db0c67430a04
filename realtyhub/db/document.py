"""
Base class for compiled entity types.

SchemaBuilder generates one ``Document`` subclass per model configuration and
fills in the class attributes below. Instances wrap a plain dict (the stored
form); lifecycle operations run through the class's HookRegistry.
"""

import copy
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from bson import ObjectId

from .errors import DocumentValidationError, DuplicateKeyError, StoreError
from .query import get_path, is_update_document, set_path, unset_path
from .schema import LIFECYCLE_EVENTS, RESERVED_KEYS, Schema, utcnow
from ..utils.exceptions import ConfigurationError, ConflictError, ModelValidationError, ServerError
from ..utils.logger import get_logger

logger = get_logger(__name__)

Hook = Callable[..., Any]

_ABSENT = object()

# names generated classes may not override with methods, statics or virtuals
BUILTIN_OPERATIONS = frozenset({
    "save", "validate", "find", "find_one", "find_by_id", "find_one_and_update",
    "find_by_id_and_update", "delete_one", "count", "to_dict", "to_json", "get", "set",
    "unset", "is_new", "is_modified", "was_modified", "modified_paths", "mark_modified",
    "unselect", "reload", "id", "schema", "hooks", "store", "collection", "model_name",
    "to_json_options", "virtual_names",
})


class HookRegistry:
    """Ordered pre/post callbacks per lifecycle event"""

    def __init__(self):
        self._hooks: Dict[str, Dict[str, List[Hook]]] = {
            "pre": {event: [] for event in LIFECYCLE_EVENTS},
            "post": {event: [] for event in LIFECYCLE_EVENTS},
        }

    def register(self, phase: str, event: str, hook: Hook) -> None:
        if phase not in self._hooks:
            raise ConfigurationError.for_kind("INVALID_CONFIG_STRUCTURE", f"Unknown hook phase '{phase}'.")
        if event not in LIFECYCLE_EVENTS:
            raise ConfigurationError.for_kind("INVALID_CONFIG_STRUCTURE", f"Unknown lifecycle event '{event}'.")
        if not callable(hook):
            raise ConfigurationError.for_kind(
                "INVALID_CONFIG_STRUCTURE", f"Hook for '{phase} {event}' is not callable."
            )
        self._hooks[phase][event].append(hook)

    def hooks_for(self, phase: str, event: str) -> List[Hook]:
        return list(self._hooks[phase][event])

    def run_pre(self, event: str, target: Any) -> None:
        # the first exception propagates and skips the rest
        for hook in self._hooks["pre"][event]:
            hook(target)

    def run_post(self, event: str, target: Any, result: Any) -> None:
        for hook in self._hooks["post"][event]:
            hook(target, result)


class Query:
    """
    Context handed to find/update/delete hooks.

    Hooks may narrow the conditions with ``where`` or, for ``delete_one``,
    replace the removal with an update through ``set_update``.
    """

    def __init__(
        self,
        model: type,
        op: str,
        conditions: Optional[Dict[str, Any]] = None,
        update: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ):
        self.model = model
        self.op = op
        self._conditions = dict(conditions or {})
        self._update = update
        self.options = dict(options or {})

    def get_query(self) -> Dict[str, Any]:
        return self._conditions

    def where(self, conditions: Optional[Dict[str, Any]] = None, **kwargs: Any) -> "Query":
        self._conditions.update(conditions or {})
        self._conditions.update(kwargs)
        return self

    def get_update(self) -> Optional[Dict[str, Any]]:
        return self._update

    def set_update(self, update: Dict[str, Any]) -> "Query":
        self._update = update
        return self

    def __repr__(self) -> str:
        return f"Query({self.model.__name__}.{self.op}, {self._conditions!r})"


class SubdocumentView:
    """Attribute access to a nested object of a document"""

    __slots__ = ("_document", "_path", "_schema")

    def __init__(self, document: "Document", path: str, schema: Schema):
        object.__setattr__(self, "_document", document)
        object.__setattr__(self, "_path", path)
        object.__setattr__(self, "_schema", schema)

    def _data(self) -> Dict[str, Any]:
        value = get_path(self._document._data, self._path)
        if not isinstance(value, dict):
            value = {}
            set_path(self._document._data, self._path, value)
        return value

    def __getattr__(self, name: str) -> Any:
        node = self._schema.fields.get(name)
        if node is None:
            raise AttributeError(f"{self._path} has no field {name!r}")
        if isinstance(node, Schema):
            return SubdocumentView(self._document, f"{self._path}.{name}", node)
        return self._data().get(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name not in self._schema.fields:
            raise AttributeError(f"{self._path} has no field {name!r}")
        self._document.set(f"{self._path}.{name}", value)

    def __delattr__(self, name: str) -> None:
        self._document.unset(f"{self._path}.{name}")

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SubdocumentView):
            other = other.to_dict()
        return self.to_dict() == other

    def __repr__(self) -> str:
        return f"SubdocumentView({self._path!r}, {self._data()!r})"


def _diff(
    current: Dict[str, Any],
    previous: Dict[str, Any],
    prefix: str,
    sets: Dict[str, Any],
    unsets: Dict[str, str],
) -> None:
    for key, value in current.items():
        path = f"{prefix}{key}"
        if key not in previous:
            sets[path] = value
        elif isinstance(value, dict) and isinstance(previous[key], dict):
            _diff(value, previous[key], path + ".", sets, unsets)
        elif value != previous[key]:
            sets[path] = value
    for key in previous:
        if key not in current:
            unsets[f"{prefix}{key}"] = ""


def _cast_id(value: Any) -> Any:
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    if isinstance(value, dict):
        return {
            op: [_cast_id(item) for item in operand] if isinstance(operand, list) else _cast_id(operand)
            for op, operand in value.items()
        }
    return value


def conflict_from_duplicate(error: DuplicateKeyError) -> ConflictError:
    """ConflictError carrying the offending unique field and value"""
    details = [
        {"field": field, "message": f"{field} already exists", "type": "unique", "value": value}
        for field, value in error.key.items()
    ]
    return ConflictError(errors=details or None)


@contextmanager
def translate_store_errors(model_name: str, operation: str):
    try:
        yield
    except DuplicateKeyError as e:
        logger.warning("Unique constraint violated", model=model_name, operation=operation, key=str(e.key))
        raise conflict_from_duplicate(e) from e
    except StoreError as e:
        logger.error("Store operation failed", model=model_name, operation=operation, error=str(e))
        raise ServerError() from e


class Document:
    """Instance of a compiled entity type"""

    schema: Schema = None
    hooks: HookRegistry = None
    store = None
    collection: str = None
    model_name: str = None
    to_json_options: Dict[str, Any] = {}
    virtual_names: tuple = ()

    def __init__(self, data: Optional[Dict[str, Any]] = None, **fields: Any):
        cls = type(self)
        values = copy.deepcopy(dict(data or {}))
        values.update(copy.deepcopy(fields))
        virtual_values = {name: values.pop(name) for name in cls.virtual_names if name in values}

        cls.schema.apply_defaults(values)
        values["_id"] = _cast_id(values["_id"]) if "_id" in values else ObjectId()
        self._init_state(values, snapshot={}, is_new=True, unselected=set())

        for name, value in virtual_values.items():
            setattr(self, name, value)

    def _init_state(
        self,
        data: Dict[str, Any],
        snapshot: Dict[str, Any],
        is_new: bool,
        unselected: Set[str],
    ) -> None:
        object.__setattr__(self, "_data", data)
        object.__setattr__(self, "_snapshot", snapshot)
        object.__setattr__(self, "_is_new", is_new)
        object.__setattr__(self, "_unselected", unselected)
        object.__setattr__(self, "_last_changes", set())

    @classmethod
    def _hydrate(cls, row: Dict[str, Any], include_hidden: Optional[Iterable[str]] = None) -> "Document":
        """Wrap a stored row, dropping hidden paths unless asked for"""
        include = set(include_hidden or ())
        unselected = set()
        for path in cls.schema.hidden_paths():
            if path in include:
                continue
            unset_path(row, path)
            unselected.add(path)
        doc = cls.__new__(cls)
        doc._init_state(row, snapshot=copy.deepcopy(row), is_new=False, unselected=unselected)
        return doc

    # ---- attribute access ----

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") or name in ("_data", "_snapshot", "_is_new", "_unselected", "_last_changes"):
            raise AttributeError(name)
        node = type(self).schema.fields.get(name)
        if isinstance(node, Schema):
            return SubdocumentView(self, name, node)
        if node is not None or name in RESERVED_KEYS:
            return self._data.get(name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name in type(self).schema.fields or name in RESERVED_KEYS:
            self.set(name, value)
        else:
            object.__setattr__(self, name, value)

    def __delattr__(self, name: str) -> None:
        if name in type(self).schema.fields:
            self.unset(name)
        else:
            object.__delattr__(self, name)

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self._data, path, default)

    def set(self, path: str, value: Any) -> None:
        if isinstance(value, SubdocumentView):
            value = value.to_dict()
        set_path(self._data, path, value)

    def unset(self, path: str) -> None:
        unset_path(self._data, path)

    def unselect(self, path: str) -> None:
        """Forget a path in memory without touching the stored value"""
        unset_path(self._data, path)
        unset_path(self._snapshot, path)
        self._unselected.add(path)

    @property
    def id(self) -> Optional[str]:
        _id = self._data.get("_id")
        return str(_id) if _id is not None else None

    @property
    def is_new(self) -> bool:
        return self._is_new

    # ---- change tracking ----

    def _changes(self) -> Dict[str, Dict[str, Any]]:
        sets: Dict[str, Any] = {}
        unsets: Dict[str, str] = {}
        _diff(self._data, self._snapshot, "", sets, unsets)
        update: Dict[str, Dict[str, Any]] = {}
        if sets:
            update["$set"] = sets
        if unsets:
            update["$unset"] = unsets
        return update

    def modified_paths(self) -> List[str]:
        if self._is_new:
            return [key for key in self._data if key != "_id"]
        changes = self._changes()
        return list(changes.get("$set", {})) + list(changes.get("$unset", {}))

    def is_modified(self, path: Optional[str] = None) -> bool:
        if path is None:
            return bool(self.modified_paths())
        if self._is_new:
            return get_path(self._data, path) is not None
        return get_path(self._data, path, _ABSENT) != get_path(self._snapshot, path, _ABSENT)

    def was_modified(self, path: str) -> bool:
        """True when the most recent save wrote ``path``"""
        return any(
            path == changed or path.startswith(changed + ".") or changed.startswith(path + ".")
            for changed in self._last_changes
        )

    def mark_modified(self, path: str) -> None:
        unset_path(self._snapshot, path)

    # ---- lifecycle ----

    def validate(self) -> "Document":
        cls = type(self)
        cls.hooks.run_pre("validate", self)
        errors = {}
        if self._is_new:
            cls.schema.validate(self._data, errors)
        else:
            skip = {path for path in self._unselected if get_path(self._data, path, _ABSENT) is _ABSENT}
            cls.schema.validate(self._data, errors, modified=set(self.modified_paths()), skip=skip)
        if errors:
            error = ModelValidationError(DocumentValidationError(cls.model_name, errors))
            logger.info("Document validation failed", model=cls.model_name, fields=error.fields)
            raise error
        cls.hooks.run_post("validate", self, self)
        return self

    def save(self) -> "Document":
        cls = type(self)
        self.validate()
        cls.hooks.run_pre("save", self)

        now = utcnow()
        with translate_store_errors(cls.model_name, "save"):
            if self._is_new:
                if cls.schema.timestamps:
                    self._data.setdefault("created_at", now)
                    self._data["updated_at"] = now
                changes = set(self.modified_paths())
                cls.store.insert_one(cls.collection, self._data)
            else:
                update = self._changes()
                if update and cls.schema.timestamps:
                    self._data["updated_at"] = now
                    update.setdefault("$set", {})["updated_at"] = now
                changes = set(update.get("$set", {})) | set(update.get("$unset", {}))
                if update:
                    cls.store.update_one(cls.collection, {"_id": self._data["_id"]}, update)

        object.__setattr__(self, "_is_new", False)
        object.__setattr__(self, "_snapshot", copy.deepcopy(self._data))
        object.__setattr__(self, "_last_changes", changes)
        cls.hooks.run_post("save", self, self)
        return self

    def reload(self, include_hidden: Optional[Iterable[str]] = None) -> "Document":
        """
        Re-read this document from the store, keeping the current selection.

        Unsaved in-memory changes are discarded. ``include_hidden`` loads
        extra hidden paths on top of the ones already present.
        """
        cls = type(self)
        with translate_store_errors(cls.model_name, "reload"):
            row = cls.store.find_one(cls.collection, {"_id": self._data["_id"]})
        if row is None:
            return self
        include = [path for path in cls.schema.hidden_paths() if path not in self._unselected]
        include.extend(include_hidden or ())
        fresh = cls._hydrate(row, include_hidden=include)
        self._init_state(fresh._data, fresh._snapshot, is_new=False, unselected=fresh._unselected)
        return self

    # ---- serialisation ----

    def to_dict(self, virtuals: bool = False) -> Dict[str, Any]:
        data = copy.deepcopy(self._data)
        if virtuals:
            for name in type(self).virtual_names:
                data[name] = getattr(self, name)
        return data

    def to_json(self) -> Dict[str, Any]:
        options = type(self).to_json_options or {}
        data = self.to_dict(virtuals=bool(options.get("virtuals", False)))
        transform = options.get("transform")
        if transform is not None:
            result = transform(self, data)
            if result is not None:
                data = result
        return data

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._data.get('_id')}>"

    # ---- collection operations ----

    @classmethod
    def _cast_query(cls, query: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        query = dict(query or {})
        if "_id" in query:
            query["_id"] = _cast_id(query["_id"])
        return query

    @classmethod
    def find(
        cls,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Any]] = None,
        limit: Optional[int] = None,
        include_hidden: Optional[Iterable[str]] = None,
    ) -> List["Document"]:
        q = Query(cls, "find", cls._cast_query(query), options={"sort": sort, "limit": limit})
        cls.hooks.run_pre("find", q)
        with translate_store_errors(cls.model_name, "find"):
            rows = cls.store.find(
                cls.collection, q.get_query(), sort=q.options.get("sort"), limit=q.options.get("limit")
            )
        docs = [cls._hydrate(row, include_hidden) for row in rows]
        cls.hooks.run_post("find", q, docs)
        return docs

    @classmethod
    def find_one(
        cls,
        query: Optional[Dict[str, Any]] = None,
        include_hidden: Optional[Iterable[str]] = None,
    ) -> Optional["Document"]:
        q = Query(cls, "find_one", cls._cast_query(query))
        cls.hooks.run_pre("find_one", q)
        with translate_store_errors(cls.model_name, "find_one"):
            row = cls.store.find_one(cls.collection, q.get_query())
        doc = cls._hydrate(row, include_hidden) if row is not None else None
        cls.hooks.run_post("find_one", q, doc)
        return doc

    @classmethod
    def find_by_id(
        cls,
        _id: Union[str, ObjectId],
        include_hidden: Optional[Iterable[str]] = None,
    ) -> Optional["Document"]:
        if not isinstance(_id, ObjectId) and not ObjectId.is_valid(_id):
            return None
        return cls.find_one({"_id": _id}, include_hidden=include_hidden)

    @classmethod
    def _prepare_update(cls, update: Dict[str, Any]) -> Dict[str, Any]:
        update = copy.deepcopy(update)
        if not is_update_document(update):
            update = {"$set": update}
        if cls.schema.timestamps:
            update.setdefault("$set", {})["updated_at"] = utcnow()
        return update

    @classmethod
    def find_one_and_update(
        cls,
        query: Dict[str, Any],
        update: Dict[str, Any],
        new: bool = True,
        include_hidden: Optional[Iterable[str]] = None,
    ) -> Optional["Document"]:
        """
        Apply ``update`` to the first match in one store operation.

        A plain mapping is treated as ``$set``; ``new`` selects whether the
        updated or the original document is returned.
        """
        q = Query(cls, "update", cls._cast_query(query), update=update, options={"new": new})
        cls.hooks.run_pre("update", q)
        with translate_store_errors(cls.model_name, "update"):
            row = cls.store.find_one_and_update(
                cls.collection, q.get_query(), cls._prepare_update(q.get_update()), return_new=new
            )
        doc = cls._hydrate(row, include_hidden) if row is not None else None
        cls.hooks.run_post("update", q, doc)
        return doc

    @classmethod
    def find_by_id_and_update(
        cls,
        _id: Union[str, ObjectId],
        update: Dict[str, Any],
        new: bool = True,
        include_hidden: Optional[Iterable[str]] = None,
    ) -> Optional["Document"]:
        if not isinstance(_id, ObjectId) and not ObjectId.is_valid(_id):
            return None
        return cls.find_one_and_update({"_id": _id}, update, new=new, include_hidden=include_hidden)

    @classmethod
    def delete_one(cls, query: Dict[str, Any]) -> int:
        """Remove the first match; a pre hook may turn this into an update"""
        q = Query(cls, "delete_one", cls._cast_query(query))
        cls.hooks.run_pre("delete_one", q)
        with translate_store_errors(cls.model_name, "delete_one"):
            if q.get_update() is not None:
                result = cls.store.update_one(cls.collection, q.get_query(), cls._prepare_update(q.get_update()))
            else:
                result = cls.store.delete_one(cls.collection, q.get_query())
        cls.hooks.run_post("delete_one", q, result)
        return result

    @classmethod
    def count(cls, query: Optional[Dict[str, Any]] = None) -> int:
        with translate_store_errors(cls.model_name, "count"):
            return cls.store.count(cls.collection, cls._cast_query(query))
