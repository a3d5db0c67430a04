"""Tests for settings loading"""

from pathlib import Path

import pytest

from realtyhub.utils.config import ConfigLoader, Settings
from realtyhub.utils.exceptions import ConfigurationError

PROJECT_CONFIG = Path(__file__).resolve().parent.parent / "config"


def write_settings(tmp_path, text):
    (tmp_path / "settings.yaml").write_text(text, encoding="utf-8")
    return ConfigLoader(str(tmp_path))


def test_missing_file_gives_defaults(tmp_path):
    settings = ConfigLoader(str(tmp_path)).load_settings()

    assert settings == Settings()
    assert settings.database.backend == "json"
    assert settings.security.max_failed_logins == 5
    assert settings.security.bcrypt_rounds == 10


def test_env_substitution(tmp_path, monkeypatch):
    monkeypatch.setenv("RH_TEST_DATA_DIR", "/srv/realtyhub")
    monkeypatch.delenv("RH_TEST_LEVEL", raising=False)
    loader = write_settings(tmp_path, """
database:
  data_dir: "${RH_TEST_DATA_DIR}"
logging:
  level: "${RH_TEST_LEVEL:DEBUG}"
""")

    settings = loader.load_settings()
    assert settings.database.data_dir == "/srv/realtyhub"
    assert settings.logging.level == "DEBUG"


def test_substituted_values_are_coerced(tmp_path, monkeypatch):
    monkeypatch.setenv("RH_TEST_ATTEMPTS", "3")
    loader = write_settings(tmp_path, """
security:
  max_failed_logins: "${RH_TEST_ATTEMPTS}"
""")

    assert loader.load_settings().security.max_failed_logins == 3


def test_missing_env_var(tmp_path, monkeypatch):
    monkeypatch.delenv("RH_TEST_MISSING", raising=False)
    loader = write_settings(tmp_path, """
database:
  mongo_uri: "${RH_TEST_MISSING}"
""")

    with pytest.raises(ConfigurationError, match=r"RH_TEST_MISSING not found \(context: database.mongo_uri\)"):
        loader.load_settings()


def test_malformed_yaml(tmp_path):
    loader = write_settings(tmp_path, "app: [unclosed\n")
    with pytest.raises(ConfigurationError, match="Failed to parse"):
        loader.load_settings()


def test_non_mapping(tmp_path):
    loader = write_settings(tmp_path, "- one\n- two\n")
    with pytest.raises(ConfigurationError, match="must contain a mapping"):
        loader.load_settings()


@pytest.mark.parametrize(
    "text",
    [
        "database:\n  backend: sqlite\n",
        "security:\n  bcrypt_rounds: 2\n",
        "security:\n  max_failed_logins: 0\n",
    ],
)
def test_invalid_values(tmp_path, text):
    with pytest.raises(ConfigurationError, match="Invalid settings"):
        write_settings(tmp_path, text).load_settings()


def test_validation_rules_override(tmp_path):
    loader = write_settings(tmp_path, """
validation:
  constraints:
    username:
      min_length: 5
      max_length: 20
  messages:
    email_required: "An email address is needed"
""")

    rules = loader.load_settings().validation
    assert rules.constraints.username.min_length == 5
    assert rules.messages.email_required == "An email address is needed"
    assert rules.messages.password_required == "Password is required"


def test_shipped_settings_load(monkeypatch):
    for name in ("REALTYHUB_ENV", "REALTYHUB_DB_BACKEND", "REALTYHUB_DATA_DIR", "MONGODB_URI",
                 "MONGODB_DATABASE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = ConfigLoader(str(PROJECT_CONFIG)).load_settings()

    assert settings.app.name == "RealtyHub"
    assert settings.database.backend == "json"
    assert settings.database.server_selection_timeout_ms == 5000
    assert settings.security.lock_minutes == 15
