"""Shared fixtures: an isolated JSON store per test and compiled models"""

import pytest

from realtyhub.db.registry import ModelRegistry
from realtyhub.db.schema_builder import SchemaBuilder
from realtyhub.db.store import JsonFileStore
from realtyhub.models.account import build_account_config
from realtyhub.models.property import build_property_config
from realtyhub.utils.config import SecuritySettings


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(str(tmp_path / "data"))


@pytest.fixture
def registry(store):
    return ModelRegistry(store)


@pytest.fixture
def builder(registry):
    return SchemaBuilder(registry)


@pytest.fixture
def Account(builder):
    # low bcrypt cost keeps the suite fast
    return builder.create_model("Account", build_account_config(security=SecuritySettings(bcrypt_rounds=4)))


@pytest.fixture
def Property(builder):
    return builder.create_model("Property", build_property_config())


@pytest.fixture
def make_account(Account):
    """Unsaved account with valid defaults; keyword arguments override fields"""

    def factory(**overrides):
        data = {
            "username": "john_doe",
            "email": "john@example.com",
            "password": "Passw0rd",
            "profile": {"first_name": "John", "last_name": "Doe"},
        }
        data.update(overrides)
        return Account(data)

    return factory
