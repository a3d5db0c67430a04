"""Explicit registry of compiled entity types"""

import threading
from typing import Dict, List

from ..utils.exceptions import ConfigurationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ModelRegistry:
    """
    Maps model names to compiled Document subclasses over one store.

    Built once at startup, frozen, then read concurrently by request
    handlers; ``clear`` discards everything at shutdown.
    """

    def __init__(self, store):
        self.store = store
        self._models: Dict[str, type] = {}
        self._frozen = False
        self._lock = threading.Lock()

    def register(self, name: str, model: type) -> None:
        with self._lock:
            if self._frozen:
                raise ConfigurationError(f"Model registry is frozen; cannot register '{name}'.")
            if name in self._models:
                raise ConfigurationError.for_kind("INVALID_MODEL_NAME", f"Model '{name}' is already registered.")
            self._models[name] = model
        logger.debug("Model registered", model=name)

    def get(self, name: str) -> type:
        try:
            return self._models[name]
        except KeyError:
            raise ConfigurationError(f"Model '{name}' is not registered.")

    __getitem__ = get

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def names(self) -> List[str]:
        return list(self._models)

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def clear(self) -> None:
        with self._lock:
            self._models.clear()
            self._frozen = False
