"""Tests for application bootstrap and the model registry lifecycle"""

from unittest.mock import MagicMock, patch

import pytest

from realtyhub.app import RealtyHubApp, create_store
from realtyhub.db.errors import StoreError
from realtyhub.db.store import JsonFileStore, MongoStore
from realtyhub.utils.config import DatabaseSettings, SecuritySettings, Settings
from realtyhub.utils.exceptions import ConfigurationError


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database=DatabaseSettings(data_dir=str(tmp_path / "data")),
        security=SecuritySettings(bcrypt_rounds=4),
    )


@pytest.fixture
def app(settings):
    app = RealtyHubApp()
    app.initialize(settings=settings, configure_logging=False)
    yield app
    app.shutdown()


def test_initialize_registers_models(app):
    registry = app.registry

    assert sorted(registry.names()) == ["Account", "Property"]
    assert registry.frozen is True
    assert isinstance(app.store, JsonFileStore)
    assert registry["Account"].collection == "accounts"
    assert registry["Property"].collection == "properties"


def test_registry_rejects_late_registration(app):
    with pytest.raises(ConfigurationError, match="frozen"):
        app.registry.register("Late", object)


def test_unknown_model(app):
    with pytest.raises(ConfigurationError, match="not registered"):
        app.registry.get("Agency")


def test_models_work_after_initialize(app):
    Account = app.registry["Account"]
    account = Account({
        "username": "jane",
        "email": "jane@example.com",
        "password": "Passw0rd",
        "profile": {"first_name": "jane", "last_name": "smith"},
        "account_status": "active",
    }).save()

    assert Account.find_by_email("jane@example.com").id == account.id
    assert account.compare_password("Passw0rd") is True


def test_security_settings_reach_the_model(tmp_path):
    app = RealtyHubApp()
    app.initialize(
        settings=Settings(
            database=DatabaseSettings(data_dir=str(tmp_path)),
            security=SecuritySettings(bcrypt_rounds=4, max_failed_logins=2, login_history_limit=3),
        ),
        configure_logging=False,
    )
    Account = app.registry["Account"]
    account = Account({
        "username": "jane",
        "email": "jane@example.com",
        "password": "Passw0rd",
        "profile": {"first_name": "Jane", "last_name": "Smith"},
    }).save()

    account.increment_failed_logins()
    account.increment_failed_logins()
    for i in range(5):
        account.add_login_history(ip_address=f"10.0.0.{i}", success=False)

    assert account.is_locked() is True
    assert len(account.login_history) == 3
    app.shutdown()


def test_shutdown_clears_registry(settings):
    app = RealtyHubApp()
    registry = app.initialize(settings=settings, configure_logging=False)
    store = app.store

    with patch.object(store, "close") as close:
        app.shutdown()
        close.assert_called_once()

    assert registry.names() == []
    assert registry.frozen is False
    assert app.registry is None
    assert app.store is None


def test_initialize_with_injected_store(settings, tmp_path):
    store = JsonFileStore(str(tmp_path / "other"))
    app = RealtyHubApp()
    app.initialize(settings=settings, store=store, configure_logging=False)

    assert app.store is store
    assert {index["name"] for index in store.list_indexes("accounts")} >= {"email_1", "username_1"}
    app.shutdown()


def test_initialize_from_config_dir(tmp_path):
    (tmp_path / "settings.yaml").write_text(
        f"database:\n  data_dir: \"{tmp_path / 'data'}\"\nsecurity:\n  bcrypt_rounds: 4\n",
        encoding="utf-8",
    )
    app = RealtyHubApp(config_dir=str(tmp_path))
    app.initialize(configure_logging=False)

    assert app.settings.security.bcrypt_rounds == 4
    assert (tmp_path / "data" / "accounts.json").exists()
    app.shutdown()


def test_create_store_for_mongo_backend():
    settings = Settings(database=DatabaseSettings(
        backend="mongo", mongo_uri="mongodb://db:27017", database_name="listings",
    ))

    with patch("realtyhub.db.store.MongoClient") as client_cls:
        store = create_store(settings)

    assert isinstance(store, MongoStore)
    client_cls.assert_called_once_with("mongodb://db:27017", serverSelectionTimeoutMS=5000)


def test_mongo_index_failure_is_a_configuration_error(settings):
    store = MagicMock()
    store.create_index.side_effect = StoreError("not primary")

    with pytest.raises(ConfigurationError, match="not primary"):
        RealtyHubApp().initialize(settings=settings, store=store, configure_logging=False)
