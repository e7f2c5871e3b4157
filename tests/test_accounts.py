import pytest

from plotgate.auth.security import decode_token
from plotgate.errors import BusinessRuleError, NotFoundError, PartiallyAppliedError, ValidationError
from plotgate.services import accounts
from plotgate.store import collections as c


def test_create_account_writes_identity_and_profile(store, identity):
    record = accounts.create_account(
        store, identity, email="Guest@Example.com", password="password123", display_name="Guest", role="guest", phone="99"
    )
    assert record.email == "guest@example.com"
    assert record.role == "guest"
    profile = store.get(c.USERS, record.uid)
    assert profile["role"] == "guest"
    assert profile["phone"] == "99"
    assert identity.get_user(record.uid).custom_claims == {"role": "guest"}


def test_duplicate_email_and_bad_role(store, identity, make_user):
    make_user("client")
    with pytest.raises(ValidationError):
        accounts.create_account(store, identity, email="client1@example.com", password="x" * 8, display_name="Dup", role="client")
    with pytest.raises(ValidationError):
        accounts.create_account(store, identity, email="new@example.com", password="x" * 8, display_name="New", role="janitor")


def test_profile_write_failure_is_partial(store, identity, monkeypatch):
    def broken_set(*args, **kwargs):
        raise RuntimeError("profile store down")

    monkeypatch.setattr(store, "set", broken_set)
    with pytest.raises(PartiallyAppliedError) as info:
        accounts.create_account(store, identity, email="p@example.com", password="x" * 8, display_name="P", role="client")
    assert info.value.applied == ["identity_created", "role_claim_set"]
    assert info.value.failed == "profile_write"


def test_login(store, identity, make_user):
    uid = make_user("manager")
    token = accounts.login(identity, "manager1@example.com", "password123")
    claims = decode_token(token)
    assert claims["sub"] == uid
    assert claims["role"] == "manager"

    with pytest.raises(BusinessRuleError) as info:
        accounts.login(identity, "manager1@example.com", "wrong-password")
    assert info.value.status_code == 401

    accounts.deactivate_account(store, identity, uid)
    with pytest.raises(BusinessRuleError) as info:
        accounts.login(identity, "manager1@example.com", "password123")
    assert info.value.status_code == 403


def test_update_role_changes_claim_and_profile(store, identity, make_user):
    uid = make_user("client")
    profile = accounts.update_account(store, identity, uid, role="manager", display_name="Promoted")
    assert profile["role"] == "manager"
    assert profile["display_name"] == "Promoted"
    assert identity.get_user(uid).role == "manager"
    with pytest.raises(NotFoundError):
        accounts.update_account(store, identity, "nobody", role="client")


def test_deactivate_identity_failure_is_partial(store, identity, make_user, monkeypatch):
    uid = make_user("guest")

    def broken_update(*args, **kwargs):
        raise RuntimeError("identity down")

    monkeypatch.setattr(identity, "update_user", broken_update)
    with pytest.raises(PartiallyAppliedError) as info:
        accounts.deactivate_account(store, identity, uid)
    assert info.value.applied == ["profile_disabled"]
    assert info.value.failed == "identity_disable"
    assert store.get(c.USERS, uid)["disabled"] is True


def test_delete_account(store, identity, make_user):
    uid = make_user("client")
    accounts.delete_account(store, identity, uid)
    assert identity.get_user(uid) is None
    assert store.get(c.USERS, uid) is None
