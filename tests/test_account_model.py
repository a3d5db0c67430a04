"""Tests for the Account model: normalisation, security behaviours and statics"""

from datetime import timedelta

import pytest

from realtyhub.db.schema import utcnow
from realtyhub.services.account_lifecycle import to_title_case
from realtyhub.utils.exceptions import (
    ConflictError,
    InvalidTokenError,
    ModelValidationError,
    NotFoundError,
    ServerError,
)


def stored_row(store, query=None):
    return store.find_one("accounts", query or {})


@pytest.fixture
def account(make_account):
    return make_account(account_status="active").save()


# ---- normalisation ----

def test_normalises_email_names_and_phone(make_account, store):
    account = make_account(
        email=" TEST@EXAMPLE.COM ",
        phone_number="+15551234567",
        profile={"first_name": " john ", "last_name": " mc doe "},
    ).save()

    row = stored_row(store)
    assert row["email"] == "test@example.com"
    assert row["profile"]["first_name"] == "John"
    assert row["profile"]["last_name"] == "Mc Doe"
    assert row["phone_number"] == "15551234567"
    assert account.email == "test@example.com"


def test_normalisation_is_idempotent(make_account, Account, store):
    account = make_account(email="Jane@Example.com", profile={"first_name": "jANE", "last_name": "smith"}).save()
    first = stored_row(store)

    loaded = Account.find_by_id(account.id)
    loaded.mark_modified("profile")
    loaded.save()
    second = stored_row(store)

    assert second["email"] == first["email"] == "jane@example.com"
    assert second["profile"]["first_name"] == first["profile"]["first_name"] == "Jane"
    assert second["profile"]["last_name"] == "Smith"


def test_title_case_keeps_spacing():
    assert to_title_case("mary  ann") == "Mary  Ann"
    assert to_title_case("O'BRIEN\tjr") == "O'brien\tJr"


def test_username_is_trimmed_and_lowercased(make_account, store):
    make_account(username="  John_Doe ").save()
    assert stored_row(store)["username"] == "john_doe"


def test_defaults(account):
    assert account.role == "user"
    assert account.security.failed_login_attempts == 0
    assert account.security.is_email_verified is False
    assert account.login_history == []
    assert account.profile.avatar.startswith("https://")
    assert account.created_at is not None


def test_new_accounts_are_pending(make_account):
    assert make_account().save().account_status == "pending"


# ---- validation ----

def test_missing_required_fields(Account):
    with pytest.raises(ModelValidationError) as exc:
        Account({}).save()

    assert set(exc.value.fields) == {
        "username", "email", "password", "profile.first_name", "profile.last_name",
    }
    messages = {entry["field"]: entry["message"] for entry in exc.value.errors}
    assert messages["email"] == "Email is required"


def test_field_constraints(make_account):
    with pytest.raises(ModelValidationError) as exc:
        make_account(
            username="a!",
            email="not-an-email",
            password="weak",
            role="owner",
            social_media_links={"twitter": "https://example.com/me"},
        ).save()

    errors = {entry["field"]: entry for entry in exc.value.errors}
    assert errors["username"]["type"] == "minlength"
    assert errors["email"]["type"] == "regexp"
    assert errors["password"]["message"] == "Password must be at least 6 characters long"
    assert errors["role"]["type"] == "enum"
    assert errors["social_media_links.twitter"]["message"] == "Please enter a valid Twitter URL"


def test_password_needs_mixed_characters(make_account):
    with pytest.raises(ModelValidationError) as exc:
        make_account(password="password1").save()
    assert exc.value.fields == ["password"]


def test_validation_failure_writes_nothing(make_account, Account):
    with pytest.raises(ModelValidationError):
        make_account(email="broken").save()
    assert Account.count() == 0


def test_duplicate_email_is_a_conflict(make_account):
    make_account().save()

    with pytest.raises(ConflictError) as exc:
        make_account(username="someone_else", email="JOHN@example.com").save()

    detail = exc.value.errors[0]
    assert detail["field"] == "email"
    assert detail["type"] == "unique"
    assert detail["value"] == "john@example.com"
    assert exc.value.status_code == 409


def test_accounts_without_phone_numbers_do_not_collide(make_account, Account):
    make_account().save()
    make_account(username="jane", email="jane@example.com").save()
    assert Account.count() == 2


# ---- passwords ----

def test_password_is_hashed_and_hidden(account, Account, store):
    row = stored_row(store)
    assert row["password"].startswith("$2b$")
    assert row["password"] != "Passw0rd"

    # hidden in memory after save and on default reads
    assert account.password is None
    loaded = Account.find_by_id(account.id)
    assert loaded.password is None
    assert "password" not in loaded.to_dict()

    with_hash = Account.find_by_id(account.id, include_hidden=["password"])
    assert with_hash.password == row["password"]


def test_compare_password(account):
    assert account.compare_password("Passw0rd") is True
    assert account.compare_password("Wr0ngPass") is False


def test_compare_password_on_loaded_account(account, Account):
    assert Account.find_by_email("john@example.com").compare_password("Passw0rd") is True


def test_compare_password_failure_is_opaque(make_account):
    unsaved = make_account()
    with pytest.raises(ServerError) as exc:
        unsaved.compare_password("Passw0rd")
    assert exc.value.message == "Password comparison failed"


def test_unrelated_save_keeps_hash(account, Account, store):
    original = stored_row(store)["password"]

    loaded = Account.find_by_id(account.id)
    loaded.profile.first_name = "jim"
    loaded.save()

    row = stored_row(store)
    assert row["password"] == original
    assert row["profile"]["first_name"] == "Jim"
    assert loaded.compare_password("Passw0rd") is True


def test_password_change_is_rehashed(account, Account, store):
    original = stored_row(store)["password"]

    account.password = "N3wSecret"
    account.save()

    assert stored_row(store)["password"] != original
    assert account.compare_password("N3wSecret") is True
    assert account.compare_password("Passw0rd") is False


# ---- lockout ----

def test_lockout_after_max_failed_logins(account):
    for _ in range(4):
        account.increment_failed_logins()
    assert account.security.failed_login_attempts == 4
    assert account.is_locked() is False

    account.increment_failed_logins()
    assert account.security.failed_login_attempts == 5
    assert account.security.lock_until is not None
    assert account.is_locked() is True
    assert account.locked_status is True


def test_reset_failed_logins(account, Account):
    for _ in range(5):
        account.increment_failed_logins()

    account.reset_failed_logins()

    loaded = Account.find_by_id(account.id)
    assert loaded.security.failed_login_attempts == 0
    assert loaded.security.lock_until is None
    assert loaded.is_locked() is False


def test_concurrent_increments_are_not_lost(account, Account):
    first = Account.find_by_id(account.id)
    second = Account.find_by_id(account.id)

    first.increment_failed_logins()
    second.increment_failed_logins()

    assert Account.find_by_id(account.id).security.failed_login_attempts == 2
    assert second.security.failed_login_attempts == 2


def test_increment_on_unsaved_account_saves_it(make_account, Account):
    account = make_account()
    account.increment_failed_logins()

    assert account.is_new is False
    assert Account.find_by_id(account.id).security.failed_login_attempts == 1


def test_lock_in_the_past_is_not_locked(account):
    account.security.lock_until = utcnow() - timedelta(minutes=1)
    assert account.is_locked() is False


def test_update_last_login(account, store):
    assert account.security.last_login is None
    account.update_last_login()
    assert stored_row(store)["security"]["last_login"] is not None


# ---- login history ----

def test_login_history_is_capped_newest_first(account, Account):
    for i in range(12):
        account.add_login_history(ip_address=f"10.0.0.{i}", success=True, user_agent="pytest")

    loaded = Account.find_by_id(account.id)
    assert len(loaded.login_history) == 10
    assert loaded.login_history[0]["ip_address"] == "10.0.0.11"
    assert loaded.login_history[-1]["ip_address"] == "10.0.0.2"


def test_login_history_entry_defaults(account):
    account.add_login_history({"ip_address": "2001:0db8:85a3:0000:0000:8a2e:0370:7334"})

    entry = account.login_history[0]
    assert entry["success"] is False
    assert entry["user_agent"] == "unknown"
    assert entry["login_at"] is not None


def test_login_history_rejects_bad_ip(account):
    with pytest.raises(ModelValidationError) as exc:
        account.add_login_history(ip_address="999.1.1.1", success=False)

    assert exc.value.fields == ["login_history.0.ip_address"]
    assert exc.value.errors[0]["message"] == "Please enter a valid IP address"


# ---- email verification ----

def test_verify_email(account, store):
    token = account.generate_email_verification_token()
    assert len(token) == 64
    assert stored_row(store)["security"]["email_verification_token"] == token

    account.verify_email(token)

    row = stored_row(store)
    assert row["security"]["is_email_verified"] is True
    assert "email_verification_token" not in row["security"]


def test_verify_email_on_fresh_instance(account, Account, store):
    token = account.generate_email_verification_token()

    loaded = Account.find_by_id(account.id)
    assert loaded.security.email_verification_token is None
    loaded.verify_email(token)

    row = stored_row(store)
    assert row["security"]["is_email_verified"] is True
    assert "email_verification_token" not in row["security"]


def test_verify_email_with_wrong_token(account, store):
    account.generate_email_verification_token()

    with pytest.raises(InvalidTokenError):
        account.verify_email("0" * 64)
    assert stored_row(store)["security"]["is_email_verified"] is False


def test_verify_email_without_token(account):
    with pytest.raises(InvalidTokenError):
        account.verify_email("anything")


# ---- soft delete ----

def test_soft_delete(account, Account, store):
    deleted = Account.soft_delete({"_id": account.id})

    row = stored_row(store)
    assert deleted.account_status == "deactivated"
    assert row["account_status"] == "deactivated"
    assert row["deleted_at"] is not None
    assert Account.count() == 1


def test_soft_delete_twice_is_a_conflict(account, Account, store):
    Account.soft_delete({"_id": account.id})
    before = stored_row(store)

    with pytest.raises(ConflictError) as exc:
        Account.soft_delete({"_id": account.id})

    assert exc.value.message == "Account is already deactivated"
    assert stored_row(store)["updated_at"] == before["updated_at"]


def test_soft_delete_missing_account(Account):
    with pytest.raises(NotFoundError) as exc:
        Account.soft_delete({"email": "nobody@example.com"})
    assert exc.value.message == "Document not found"


def test_delete_one_becomes_soft_delete(account, Account, store):
    assert Account.delete_one({"_id": account.id}) == 1

    row = stored_row(store)
    assert row is not None
    assert row["account_status"] == "deactivated"
    assert row["deleted_at"] is not None


def test_delete_one_leaves_deactivated_account_untouched(account, Account, store):
    Account.soft_delete({"_id": account.id})
    before = stored_row(store)

    assert Account.delete_one({"_id": account.id}) == 0

    after = stored_row(store)
    assert after["account_status"] == "deactivated"
    assert after["deleted_at"] == before["deleted_at"]
    assert after["updated_at"] == before["updated_at"]


# ---- queries ----

@pytest.fixture
def population(make_account):
    active = make_account(account_status="active").save()
    pending = make_account(
        username="jane_smith",
        email="jane@example.com",
        profile={"first_name": "Jane", "last_name": "Smith"},
    ).save()
    return active, pending


def test_find_defaults_to_active(population, Account):
    active, pending = population

    assert [doc.id for doc in Account.find()] == [active.id]
    assert [doc.id for doc in Account.find({"account_status": "pending"})] == [pending.id]
    assert Account.count() == 2


def test_find_one_is_not_filtered(population, Account):
    _, pending = population
    assert Account.find_one({"username": "jane_smith"}).id == pending.id


def test_find_by_email_normalises(population, Account):
    active, _ = population

    assert Account.find_by_email("  JOHN@Example.COM ").id == active.id
    assert Account.find_by_email("jane@example.com") is None


def test_find_by_username_and_identifier(population, Account):
    active, _ = population

    assert Account.find_by_username("john_doe").id == active.id
    assert Account.find_by_email_or_username("john_doe").id == active.id
    assert Account.find_by_email_or_username("john@example.com").id == active.id
    assert Account.find_by_email_or_username("jane_smith") is None


def test_identifier_lookup_normalises_case(population, Account):
    active, _ = population

    assert Account.find_by_email_or_username("  John_Doe ").id == active.id
    assert Account.find_by_email_or_username("JOHN@Example.com").id == active.id


def test_find_by_id_active_only(population, Account):
    active, pending = population

    assert Account.find_by_id_active_only(active.id).id == active.id
    assert Account.find_by_id_active_only(pending.id) is None


def test_search_users(population, make_account, Account):
    make_account(
        username="johnny",
        email="johnny@example.com",
        account_status="active",
        profile={"first_name": "Johnny", "last_name": "Bravo"},
    ).save()

    assert sorted(doc.username for doc in Account.search_users("JOHN")) == ["john_doe", "johnny"]
    assert [doc.username for doc in Account.search_users("bravo")] == ["johnny"]
    assert Account.search_users("smith") == []
    assert Account.search_users("(") == []


def test_lock_user_by_id(population, Account, store):
    active, _ = population

    locked = Account.lock_user_by_id(active.id)

    assert locked.account_status == "suspended"
    assert stored_row(store, {"username": "john_doe"})["account_status"] == "suspended"
    assert Account.lock_user_by_id("not-an-id") is None


def test_lock_user_by_id_only_suspends_active_accounts(population, Account, store):
    active, pending = population
    Account.soft_delete({"_id": active.id})

    assert Account.lock_user_by_id(active.id) is None
    assert Account.lock_user_by_id(pending.id) is None

    assert stored_row(store, {"username": "john_doe"})["account_status"] == "deactivated"
    assert stored_row(store, {"username": "jane_smith"})["account_status"] == "pending"


# ---- serialisation ----

def test_to_json(account, Account):
    data = Account.find_by_id(account.id, include_hidden=["password"]).to_json()

    assert "password" not in data
    assert data["full_name"] == "John Doe"
    assert data["locked_status"] is False
    assert data["email"] == "john@example.com"


def test_status_change_is_tracked(account, Account):
    loaded = Account.find_by_id(account.id)
    loaded.account_status = "suspended"
    loaded.save()
    assert loaded.was_modified("account_status") is True

    loaded.profile.first_name = "Jim"
    loaded.save()
    assert loaded.was_modified("account_status") is False
