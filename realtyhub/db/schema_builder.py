"""
Schema builder

Compiles a declarative model configuration into a Document subclass bound
to a store, then registers it. Every check runs before the model is
registered, so a failed compilation leaves no entity type behind.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from .document import BUILTIN_OPERATIONS, Document, HookRegistry
from .errors import StoreError
from .registry import ModelRegistry
from .schema import RESERVED_KEYS, Schema
from ..utils.exceptions import ConfigurationError
from ..utils.logger import get_logger

logger = get_logger(__name__)

IndexDeclaration = Tuple[List[Tuple[str, int]], Dict[str, Any]]


class SchemaBuilder:
    """
    Creates entity types from model configurations.

    Example:
        builder = SchemaBuilder(registry)
        Account = builder.create_model("Account", account_config)
    """

    def __init__(self, registry: ModelRegistry):
        self.registry = registry

    def create_model(self, model_name: Any, config: Any) -> type:
        """
        Compile and register an entity type.

        Args:
            model_name: Non-empty model name
            config: Model configuration (fields, options, hooks, methods, statics, virtuals)

        Returns:
            The generated Document subclass

        Raises:
            ConfigurationError: If the name or configuration is invalid, or the
                store rejects one of the declared indexes
        """
        self.validate_model_name(model_name)
        self.validate_config_structure(config)
        name = model_name.strip()
        if name in self.registry:
            raise ConfigurationError.for_kind("INVALID_MODEL_NAME", f"Model '{name}' is already registered.")
        if self.registry.frozen:
            raise ConfigurationError(f"Model registry is frozen; cannot register '{name}'.")

        options = config.get("options") or {}
        schema_options = {"timestamps": True}
        schema_options.update(options.get("schema_options") or {})
        try:
            schema = Schema(config["fields"], options=schema_options)
        except (TypeError, ValueError, KeyError, re.error) as e:
            raise ConfigurationError.for_kind("INVALID_CONFIG_STRUCTURE", f"Fields could not be compiled: {e}")

        hooks = self.apply_hooks(config.get("hooks"))
        namespace: Dict[str, Any] = {
            "schema": schema,
            "hooks": hooks,
            "store": self.registry.store,
            "collection": schema_options.get("collection") or f"{name.lower()}s",
            "model_name": name,
            "to_json_options": dict(schema_options.get("to_json") or {}),
        }
        self.check_member_names(config, schema)
        self.apply_methods(namespace, config.get("methods"))
        self.apply_statics(namespace, config.get("statics"))
        self.apply_virtuals(namespace, config.get("virtuals"))
        indexes = self.collect_indexes(schema, options.get("indexes"))

        model = type(name, (Document,), namespace)
        self.apply_indexes(model, indexes)
        self.registry.register(name, model)
        logger.info("Model compiled", model=name, collection=model.collection, indexes=len(indexes))
        return model

    @staticmethod
    def validate_model_name(model_name: Any) -> None:
        if not isinstance(model_name, str) or not model_name.strip():
            raise ConfigurationError.for_kind("INVALID_MODEL_NAME")

    @staticmethod
    def validate_config_structure(config: Any) -> None:
        if not isinstance(config, dict):
            raise ConfigurationError.for_kind("INVALID_CONFIG_STRUCTURE")
        if not config.get("fields"):
            raise ConfigurationError.for_kind("MISSING_FIELDS_OBJECT")
        if not isinstance(config["fields"], dict):
            raise ConfigurationError.for_kind("INVALID_CONFIG_STRUCTURE", '"fields" must be a mapping.')
        for section in ("options", "hooks", "methods", "statics", "virtuals"):
            if config.get(section) is not None and not isinstance(config[section], dict):
                raise ConfigurationError.for_kind("INVALID_CONFIG_STRUCTURE", f'"{section}" must be a mapping.')

    @staticmethod
    def check_member_names(config: Dict[str, Any], schema: Schema) -> None:
        """Methods, statics and virtuals may not shadow built-ins, fields or each other"""
        taken = set(BUILTIN_OPERATIONS) | set(schema.fields) | set(RESERVED_KEYS)
        seen = set()
        for section in ("methods", "statics", "virtuals"):
            for member, impl in (config.get(section) or {}).items():
                if member in taken or member in seen:
                    raise ConfigurationError.for_kind(
                        "INVALID_CONFIG_STRUCTURE", f"{section} entry '{member}' collides with an existing name."
                    )
                seen.add(member)
                if section == "virtuals":
                    if not isinstance(impl, dict) or not callable(impl.get("get")):
                        raise ConfigurationError.for_kind(
                            "INVALID_CONFIG_STRUCTURE", f"Virtual '{member}' needs a callable getter."
                        )
                    if impl.get("set") is not None and not callable(impl["set"]):
                        raise ConfigurationError.for_kind(
                            "INVALID_CONFIG_STRUCTURE", f"Virtual '{member}' setter is not callable."
                        )
                elif not callable(impl):
                    raise ConfigurationError.for_kind(
                        "INVALID_CONFIG_STRUCTURE", f"{section} entry '{member}' is not callable."
                    )

    @staticmethod
    def apply_hooks(hooks: Optional[Dict[str, Any]]) -> HookRegistry:
        registry = HookRegistry()
        for phase, events in (hooks or {}).items():
            if not isinstance(events, dict):
                raise ConfigurationError.for_kind("INVALID_CONFIG_STRUCTURE", f'hooks "{phase}" must be a mapping.')
            for event, handlers in events.items():
                if not isinstance(handlers, (list, tuple)):
                    handlers = [handlers]
                for handler in handlers:
                    registry.register(phase, event, handler)
        return registry

    @staticmethod
    def apply_methods(namespace: Dict[str, Any], methods: Optional[Dict[str, Any]]) -> None:
        for method_name, handler in (methods or {}).items():
            namespace[method_name] = handler

    @staticmethod
    def apply_statics(namespace: Dict[str, Any], statics: Optional[Dict[str, Any]]) -> None:
        for static_name, handler in (statics or {}).items():
            namespace[static_name] = classmethod(handler)

    @staticmethod
    def apply_virtuals(namespace: Dict[str, Any], virtuals: Optional[Dict[str, Any]]) -> None:
        for virtual_name, spec in (virtuals or {}).items():
            namespace[virtual_name] = property(spec["get"], spec.get("set"))
        namespace["virtual_names"] = tuple(virtuals or ())

    @staticmethod
    def collect_indexes(schema: Schema, declared: Optional[List[Dict[str, Any]]]) -> List[IndexDeclaration]:
        """Explicit index declarations, then field-level ones not already covered"""
        indexes: List[IndexDeclaration] = []
        seen = set()
        for entry in declared or []:
            if not isinstance(entry, dict) or not isinstance(entry.get("fields"), dict) or not entry["fields"]:
                raise ConfigurationError.for_kind(
                    "INVALID_CONFIG_STRUCTURE", 'Each index needs a non-empty "fields" mapping.'
                )
            keys = [(field, int(direction)) for field, direction in entry["fields"].items()]
            indexes.append((keys, dict(entry.get("options") or {})))
            seen.add(tuple(keys))

        for fields, index_options in schema.field_indexes():
            keys = list(fields.items())
            if tuple(keys) in seen:
                continue
            indexes.append((keys, index_options))
            seen.add(tuple(keys))
        return indexes

    @staticmethod
    def apply_indexes(model: type, indexes: List[IndexDeclaration]) -> None:
        for keys, index_options in indexes:
            try:
                model.store.create_index(model.collection, keys, **index_options)
            except StoreError as e:
                raise ConfigurationError.for_kind(
                    "INVALID_CONFIG_STRUCTURE", f"Index {keys} on {model.collection} failed: {e}"
                )
