"""Schema compiler, document model and storage backends"""

from .document import Document, HookRegistry, Query
from .errors import DocumentValidationError, DuplicateKeyError, FieldError, StoreError
from .registry import ModelRegistry
from .schema import Schema, SchemaField
from .schema_builder import SchemaBuilder
from .store import DocumentStore, JsonFileStore, MongoStore
from .type_mapper import ArrayOf, Mixed, map_to_storage_type

__all__ = [
    "Document",
    "HookRegistry",
    "Query",
    "DocumentValidationError",
    "DuplicateKeyError",
    "FieldError",
    "StoreError",
    "ModelRegistry",
    "Schema",
    "SchemaField",
    "SchemaBuilder",
    "DocumentStore",
    "JsonFileStore",
    "MongoStore",
    "ArrayOf",
    "Mixed",
    "map_to_storage_type",
]
