"""Application bootstrap: settings, logging, store and the model registry"""

from typing import Optional

from .db.registry import ModelRegistry
from .db.schema_builder import SchemaBuilder
from .db.store import DocumentStore, JsonFileStore, MongoStore
from .models.account import ACCOUNT_MODEL_NAME, build_account_config
from .models.property import PROPERTY_MODEL_NAME, build_property_config
from .utils.config import ConfigLoader, Settings
from .utils.logger import get_logger, setup_logger

logger = get_logger(__name__)


def create_store(settings: Settings) -> DocumentStore:
    database = settings.database
    if database.backend == "mongo":
        return MongoStore.from_uri(
            database.mongo_uri,
            database.database_name,
            server_selection_timeout_ms=database.server_selection_timeout_ms,
        )
    return JsonFileStore(database.data_dir)


class RealtyHubApp:
    """Owns the store and the registry of compiled models for one process"""

    def __init__(self, config_dir: str = "config"):
        self.config_dir = config_dir
        self.settings: Optional[Settings] = None
        self.store: Optional[DocumentStore] = None
        self.registry: Optional[ModelRegistry] = None

    def initialize(
        self,
        settings: Optional[Settings] = None,
        store: Optional[DocumentStore] = None,
        configure_logging: bool = True,
    ) -> ModelRegistry:
        """Load settings, compile every model and freeze the registry"""
        self.settings = settings or ConfigLoader(self.config_dir).load_settings()

        if configure_logging:
            log = self.settings.logging
            setup_logger(
                log_level=log.level,
                log_format=log.format,
                file_path=log.file_path,
                max_bytes=log.max_bytes,
                backup_count=log.backup_count,
            )

        logger.info(
            "Initializing RealtyHub",
            app_name=self.settings.app.name,
            version=self.settings.app.version,
            environment=self.settings.app.environment,
            backend=self.settings.database.backend,
        )

        self.store = store or create_store(self.settings)
        self.registry = ModelRegistry(self.store)
        builder = SchemaBuilder(self.registry)
        builder.create_model(
            ACCOUNT_MODEL_NAME,
            build_account_config(self.settings.validation, self.settings.security),
        )
        builder.create_model(PROPERTY_MODEL_NAME, build_property_config(self.settings.validation))
        self.registry.freeze()

        logger.info("Models registered", models=self.registry.names())
        return self.registry

    def shutdown(self) -> None:
        if self.registry is not None:
            self.registry.clear()
            self.registry = None
        if self.store is not None:
            self.store.close()
            self.store = None
        logger.info("RealtyHub shut down")
