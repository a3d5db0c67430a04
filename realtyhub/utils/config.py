"""
Configuration management with schema validation.
Settings come from config/settings.yaml with ${VAR} / ${VAR:default}
environment substitution; every section has code defaults so a missing
file still yields a usable configuration.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .exceptions import ConfigurationError
from ..models.validation_rules import ValidationRules


class AppSettings(BaseModel):
    name: str = "RealtyHub"
    version: str = "1.0.0"
    environment: str = "production"


class DatabaseSettings(BaseModel):
    """Document store selection.

    backend "json" keeps one JSON file per collection under data_dir;
    backend "mongo" talks to a MongoDB server through pymongo.
    """
    backend: str = Field(default="json", pattern="^(json|mongo)$")
    data_dir: str = "data"
    mongo_uri: str = "mongodb://localhost:27017"
    database_name: str = "realtyhub"
    server_selection_timeout_ms: int = 5000


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file_path: Optional[str] = "logs/realtyhub.log"
    max_bytes: int = 10485760
    backup_count: int = 5


class SecuritySettings(BaseModel):
    """Account security knobs"""
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)
    max_failed_logins: int = Field(default=5, ge=1)
    lock_minutes: int = Field(default=15, ge=1)
    login_history_limit: int = Field(default=10, ge=1)
    verification_token_bytes: int = Field(default=32, ge=16)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    validation: ValidationRules = Field(default_factory=ValidationRules)


class ConfigLoader:
    """Load and parse configuration files"""

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        load_dotenv()

    def _substitute_env_vars(self, value: Any, context: str = "") -> Any:
        """Recursively substitute environment variables in config values"""
        if isinstance(value, str):
            if value.startswith("${") and value.endswith("}"):
                var_expr = value[2:-1]
                if ":" in var_expr:
                    var_name, default = var_expr.split(":", 1)
                    return os.getenv(var_name.strip(), default.strip())
                env_value = os.getenv(var_expr)
                if env_value is None:
                    error_msg = f"Environment variable {var_expr} not found"
                    if context:
                        error_msg += f" (context: {context})"
                    raise ConfigurationError(error_msg)
                return env_value
        elif isinstance(value, dict):
            return {
                k: self._substitute_env_vars(v, context=f"{context}.{k}" if context else k)
                for k, v in value.items()
            }
        elif isinstance(value, list):
            return [
                self._substitute_env_vars(item, context=f"{context}[{i}]" if context else f"[{i}]")
                for i, item in enumerate(value)
            ]
        return value

    def load_settings(self) -> Settings:
        """Load application settings; defaults when settings.yaml is absent"""
        settings_path = self.config_dir / "settings.yaml"
        if not settings_path.exists():
            return Settings()

        try:
            with open(settings_path, "r", encoding="utf-8") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {settings_path}: {e}")

        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Settings file must contain a mapping: {settings_path}")

        config = self._substitute_env_vars(raw_config)
        try:
            return Settings(**config)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid settings in {settings_path}: {e}")
