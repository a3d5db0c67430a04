"""Errors raised by the document layer in its own shape.

The model layer translates these into the shared taxonomy in
``realtyhub.utils.exceptions``.
"""

from typing import Any, Dict, Optional


class StoreError(Exception):
    """Base error for document store backends"""
    pass


class DuplicateKeyError(StoreError):
    """A write violated a unique index"""

    def __init__(self, message: str, collection: str, key: Optional[Dict[str, Any]] = None):
        self.collection = collection
        self.key = key or {}
        super().__init__(message)


class FieldError:
    """One failed constraint on one path"""

    __slots__ = ("path", "message", "kind", "value")

    def __init__(self, path: str, message: str, kind: str, value: Any = None):
        self.path = path
        self.message = message
        self.kind = kind
        self.value = value

    def __repr__(self) -> str:
        return f"FieldError(path={self.path!r}, kind={self.kind!r}, message={self.message!r})"


class DocumentValidationError(StoreError):
    """Validation failed; ``errors`` maps each offending path to its FieldError"""

    def __init__(self, model_name: str, errors: Dict[str, FieldError]):
        self.model_name = model_name
        self.errors = errors
        summary = ", ".join(f"{path}: {err.message}" for path, err in errors.items())
        super().__init__(f"{model_name} validation failed: {summary}")
