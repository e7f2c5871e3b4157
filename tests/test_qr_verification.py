from datetime import datetime

import pytest

from plotgate.errors import BusinessRuleError, ValidationError
from plotgate.services.access_log import get_access_logs, verify_integrity
from plotgate.services.qr_tokens import issue_visitor_qr
from plotgate.services.qr_verification import verify_qr
from plotgate.store import collections as c


NOW = datetime(2025, 3, 10, 6, 0)


@pytest.fixture
def owned_plot(make_user, make_plot):
    client_id = make_user("client", name="Asha Client")
    return client_id, make_plot(owner_id=client_id, number=42)


def _visitor_pass(store, client_id, plot_id, now=NOW):
    return issue_visitor_qr(
        store,
        client_id=client_id,
        plot_id=plot_id,
        visitor_name="Jane Doe",
        visitor_phone="555-0100",
        purpose="delivery",
        now=now,
    )


@pytest.mark.parametrize(
    "token",
    [
        "client:abc",
        "client:abc:plot",
        "client:abc:plot:p1:extra",
        "visitor:abc:plot:p1",
        "client:abc:lot:p1",
        "client::plot:p1",
        "x",
    ],
)
def test_malformed_client_token_is_format_error(store, identity, token):
    with pytest.raises(ValidationError) as info:
        verify_qr(store, identity, token, "client", NOW)
    assert info.value.message == "Invalid client QR format"


def test_client_qr_success_logs_entry(store, identity, owned_plot):
    client_id, plot_id = owned_plot
    result = verify_qr(store, identity, f"client:{client_id}:plot:{plot_id}", "client", NOW, verified_by="mgr")
    assert result["user"]["name"] == "Asha Client"
    assert result["plot"] == {"id": plot_id, "number": 42}

    logs = get_access_logs(store, plot_id=plot_id)
    assert len(logs) == 1
    assert logs[0]["type"] == "client"
    assert logs[0]["action"] == "entry"
    assert logs[0]["verified_by"] == "mgr"
    assert verify_integrity(logs[0])


def test_client_qr_unknown_or_disabled_user(store, identity, owned_plot):
    client_id, plot_id = owned_plot
    with pytest.raises(BusinessRuleError) as info:
        verify_qr(store, identity, f"client:ghost:plot:{plot_id}", "client", NOW)
    assert info.value.message == "Invalid or disabled user"

    identity.update_user(client_id, disabled=True)
    with pytest.raises(BusinessRuleError):
        verify_qr(store, identity, f"client:{client_id}:plot:{plot_id}", "client", NOW)


def test_client_qr_ownership_mismatch(store, identity, owned_plot, make_user, make_plot):
    client_id, _ = owned_plot
    other_plot = make_plot(owner_id=make_user("client"))
    with pytest.raises(BusinessRuleError) as info:
        verify_qr(store, identity, f"client:{client_id}:plot:{other_plot}", "client", NOW)
    assert info.value.message == "User does not own this plot"
    assert get_access_logs(store) == []


def test_visitor_qr_consumed_once(store, identity, owned_plot):
    client_id, plot_id = owned_plot
    pass_doc = _visitor_pass(store, client_id, plot_id)

    result = verify_qr(store, identity, pass_doc["qr_token"], "visitor", NOW)
    assert result == {
        "visitor": {"name": "Jane Doe", "phone": "555-0100", "purpose": "delivery"},
        "plot": {"id": plot_id},
    }
    stored = store.get(c.VISITOR_QRS, pass_doc["id"])
    assert stored["status"] == "used"
    assert stored["used_at"] == NOW

    with pytest.raises(BusinessRuleError) as info:
        verify_qr(store, identity, pass_doc["qr_token"], "visitor", NOW)
    assert info.value.message == "Invalid or expired visitor QR code"
    assert len(get_access_logs(store, access_type="visitor")) == 1


def test_visitor_qr_after_expiry_fails(store, identity, owned_plot):
    client_id, plot_id = owned_plot
    pass_doc = _visitor_pass(store, client_id, plot_id)
    with pytest.raises(BusinessRuleError):
        verify_qr(store, identity, pass_doc["qr_token"], "visitor", pass_doc["expiry_date"])
    assert store.get(c.VISITOR_QRS, pass_doc["id"])["status"] == "active"


def test_unknown_visitor_token(store, identity):
    with pytest.raises(BusinessRuleError):
        verify_qr(store, identity, "not-a-token", "visitor", NOW)


def test_type_and_missing_input(store, identity):
    with pytest.raises(ValidationError) as info:
        verify_qr(store, identity, "abc", "staff", NOW)
    assert info.value.message == "Invalid QR type"
    with pytest.raises(ValidationError):
        verify_qr(store, identity, "", "visitor", NOW)
