import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, inspect
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Query
from sqlalchemy.pool import StaticPool

from plotgate.config import settings
from plotgate.main import app
from plotgate.store import collections as c
from plotgate.store.sql_provider import SqlDocumentStore


FUTURE_DAY = "2099-06-01"


@pytest.fixture
def admin(make_user, auth_header):
    uid = make_user("admin")
    return uid, auth_header(uid, "admin")


@pytest.fixture
def manager(make_user, auth_header):
    uid = make_user("manager", name="Meera Manager")
    return uid, auth_header(uid, "manager")


@pytest.fixture
def guest(make_user, auth_header):
    uid = make_user("guest", name="Gita Guest")
    return uid, auth_header(uid, "guest")


@pytest.fixture
def client_user(make_user, auth_header):
    uid = make_user("client", name="Chandra Client")
    return uid, auth_header(uid, "client")


def _read(db, collection, doc_id):
    db.expire_all()
    return SqlDocumentStore(db).get(collection, doc_id)


def _create_visit(client, headers, day=FUTURE_DAY):
    resp = client.post(
        "/visits",
        json={"projectId": "proj-1", "projectName": "Green Acres", "timeSlot": {"date": day, "startTime": "10:00"}},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["visit"]["id"]


def test_requires_authentication(client):
    resp = client.post("/generate-qr-token", json={"visitId": "x"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Not authenticated"}


def test_role_gate(client, guest):
    _, headers = guest
    assert client.post("/assign-task", json={}, headers=headers).status_code == 403


def test_visit_end_to_end(client, db, admin, manager, guest):
    guest_id, guest_headers = guest
    _, admin_headers = admin
    _, manager_headers = manager

    visit_id = _create_visit(client, guest_headers, day="2025-03-14")
    mine = client.get("/visits/mine", headers=guest_headers).json()["items"]
    assert [v["id"] for v in mine] == [visit_id]
    assert mine[0]["status"] == "pending"
    assert mine[0]["userName"] == "Gita Guest"

    resp = client.post("/generate-qr-token", json={"visitId": visit_id}, headers=admin_headers)
    body = resp.json()
    assert resp.status_code == 200
    assert body["qrCodeExpiry"] == "2025-03-14T18:29:59.999Z"
    token = body["qrCodeToken"]

    again = client.post("/generate-qr-token", json={"visitId": visit_id}, headers=admin_headers).json()
    assert again["qrCodeToken"] == token
    assert again["message"] == "QR code already generated"

    # visit tokens are not client QR codes
    resp = client.post("/verify-qr", json={"qrToken": token, "type": "client"}, headers=manager_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid client QR format"}

    # the visit date has passed by now, so the sweep finalizes it
    sweep = client.get("/check-expired-visits").json()
    assert sweep["success"] is True
    assert sweep["message"] == "Processed expired visits"
    assert sweep["processedCount"] == 1
    assert sweep["processedVisits"] == [{"visitId": visit_id, "userId": guest_id, "action": "account_disabled"}]

    assert _read(db, c.VISIT_REQUESTS, visit_id)["status"] == "completed"
    assert _read(db, c.USERS, guest_id)["disabled"] is True
    assert client.get("/visits/mine", headers=guest_headers).status_code == 401

    empty = client.get("/check-expired-visits").json()
    assert empty["processedCount"] == 0
    assert empty["message"] == "No expired visits found"


def test_generate_qr_token_errors(client, admin):
    _, headers = admin
    resp = client.post("/generate-qr-token", json={}, headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Visit ID is required"}
    resp = client.post("/generate-qr-token", json={"visitId": "missing"}, headers=headers)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Visit not found"}


def test_decision_and_check_in(client, db, admin, manager, client_user):
    _, admin_headers = admin
    manager_id, manager_headers = manager
    _, client_headers = client_user

    visit_id = _create_visit(client, client_headers)
    resp = client.post(f"/visits/{visit_id}/decision", json={"approved": True, "assignManager": True}, headers=admin_headers)
    body = resp.json()
    assert body["status"] == "approved"
    assert body["assignedTo"] == manager_id

    resp = client.post("/visits/check-in", json={"qrToken": body["qrCodeToken"]}, headers=manager_headers)
    assert resp.status_code == 200
    assert resp.json()["visit"]["status"] == "checked-in"

    resp = client.post("/visits/check-in", json={"qrToken": body["qrCodeToken"]}, headers=manager_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid or expired visit QR code"}

    resp = client.post(f"/visits/{visit_id}/close", headers=manager_headers)
    assert resp.json() == {"success": True, "status": "completed"}


def test_reject_visit(client, admin, client_user):
    _, admin_headers = admin
    _, client_headers = client_user
    visit_id = _create_visit(client, client_headers)
    resp = client.post(f"/visits/{visit_id}/decision", json={"approved": False, "reason": "Closed"}, headers=admin_headers)
    assert resp.json()["status"] == "rejected"
    assert resp.json()["qrCodeToken"] is None
    detail = client.get(f"/visits/{visit_id}", headers=client_headers).json()
    assert detail["rejectionReason"] == "Closed"


def test_visitor_pass_end_to_end(client, db, make_plot, manager, client_user):
    client_id, client_headers = client_user
    _, manager_headers = manager
    plot_id = make_plot(owner_id=client_id, number=9)

    resp = client.post(
        "/visitor-qr",
        json={"plotId": plot_id, "visitorName": "Jane Doe", "visitorPhone": "555-0100", "purpose": "delivery"},
        headers=client_headers,
    )
    assert resp.status_code == 200
    issued = resp.json()
    active = client.get("/visitor-qr/active", headers=client_headers).json()["visitorQr"]
    assert active["id"] == issued["id"]

    resp = client.post("/verify-qr", json={"qrToken": issued["qrCodeToken"], "type": "visitor"}, headers=manager_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["visitor"]["name"] == "Jane Doe"
    assert body["plot"] == {"id": plot_id}
    assert _read(db, c.VISITOR_QRS, issued["id"])["status"] == "used"

    resp = client.post("/verify-qr", json={"qrToken": issued["qrCodeToken"], "type": "visitor"}, headers=manager_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid or expired visitor QR code"}

    history = client.get("/visitor-qr/history", headers=client_headers).json()["items"]
    assert [h["status"] for h in history] == ["used"]
    logs = client.get("/access-logs", params={"type": "visitor"}, headers=manager_headers).json()["items"]
    assert len(logs) == 1
    assert logs[0]["intact"] is True


def test_client_qr_round_trip(client, make_plot, manager, client_user):
    client_id, client_headers = client_user
    _, manager_headers = manager
    plot_id = make_plot(owner_id=client_id, number=21)

    payload = client.get(f"/client-qr/{plot_id}", headers=client_headers).json()["qrPayload"]
    resp = client.post("/verify-qr", json={"qrToken": payload, "type": "client"}, headers=manager_headers)
    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "Chandra Client"
    assert resp.json()["plot"] == {"id": plot_id, "number": 21}

    png = client.get("/qr.png", params={"data": payload})
    assert png.headers["content-type"] == "image/png"


def test_verify_qr_missing_fields_and_bad_type(client, manager):
    _, headers = manager
    resp = client.post("/verify-qr", json={"type": "visitor"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "QR token and type are required"}
    resp = client.post("/verify-qr", json={"qrToken": "abc", "type": "staff"}, headers=headers)
    assert resp.json() == {"error": "Invalid QR type"}


def test_maintenance_mode_blocks_gate_and_leave(client, manager, admin, monkeypatch):
    monkeypatch.setattr(settings, "maintenance_mode", True)
    _, manager_headers = manager
    _, admin_headers = admin
    for path, headers in (("/verify-qr", manager_headers), ("/approve-leave", admin_headers)):
        resp = client.post(path, json={}, headers=headers)
        assert resp.status_code == 503
        assert resp.json() == {"message": "This API is currently in maintenance mode."}


def test_assign_task_route(client, make_user, admin):
    _, headers = admin
    first = make_user("manager", name="First")
    second = make_user("manager", name="Second")
    payload = {
        "taskType": "maintenance",
        "title": "Fix gate",
        "description": "Gate motor is noisy",
        "priority": "high",
        "dueDate": "2025-03-20T10:00:00Z",
    }
    one = client.post("/assign-task", json=payload, headers=headers).json()
    two = client.post("/assign-task", json=payload, headers=headers).json()
    assert one["assignedTo"] == {"managerId": first, "managerName": "First"}
    assert two["assignedTo"] == {"managerId": second, "managerName": "Second"}

    resp = client.post("/assign-task", json={"title": "Incomplete"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required task fields"}


def test_assign_task_without_managers(client, admin):
    _, headers = admin
    payload = {"taskType": "maintenance", "title": "t", "description": "d", "priority": "low", "dueDate": "2025-03-20"}
    resp = client.post("/assign-task", json=payload, headers=headers)
    assert resp.status_code == 404
    assert resp.json() == {"error": "No active managers found"}


def test_leave_request_and_decision(client, db, manager, admin):
    manager_id, manager_headers = manager
    admin_id, admin_headers = admin
    resp = client.post(
        "/leaves", json={"startDate": "2025-04-01", "endDate": "2025-04-03", "reason": "Family event"}, headers=manager_headers
    )
    leave_id = resp.json()["leaveId"]
    mine = client.get("/leaves/mine", headers=manager_headers).json()["items"]
    assert [(leave["id"], leave["status"]) for leave in mine] == [(leave_id, "pending")]

    resp = client.post("/approve-leave", json={"leaveId": leave_id, "approved": True}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required fields"}

    resp = client.post(
        "/approve-leave",
        json={"leaveId": leave_id, "approved": False, "reason": "Peak season", "approvedBy": admin_id},
        headers=admin_headers,
    )
    assert resp.json() == {"success": True, "status": "rejected"}
    leave = _read(db, c.LEAVE_REQUESTS, leave_id)
    assert leave["rejection_reason"] == "Peak season"
    assert leave["approved_by"] == admin_id

    resp = client.post(
        "/approve-leave", json={"leaveId": "missing", "approved": True, "approvedBy": admin_id}, headers=admin_headers
    )
    assert resp.status_code == 404


def test_cron_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "s3cret")
    assert client.get("/check-expired-visits").status_code == 401
    assert client.get("/check-expired-visits", headers={"X-Cron-Secret": "wrong"}).status_code == 401
    assert client.get("/check-expired-visits", headers={"X-Cron-Secret": "s3cret"}).status_code == 200


def test_backend_fault_maps_to_503(client, manager, monkeypatch):
    _, headers = manager

    def unavailable(self):
        raise sa_exc.OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(Query, "all", unavailable)
    resp = client.post("/verify-qr", json={"qrToken": "tok", "type": "visitor"}, headers=headers)
    assert resp.status_code == 503
    assert resp.json() == {"error": "Backend service unavailable. Please try again later."}


def test_unexpected_error_is_generic_500(client, manager, monkeypatch):
    _, headers = manager

    def crash(*args, **kwargs):
        raise RuntimeError("secret internals")

    monkeypatch.setattr("plotgate.routes.qr.verify_qr_token", crash)
    resp = client.post("/verify-qr", json={"qrToken": "tok", "type": "visitor"}, headers=headers)
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_guest_registration_and_login(client):
    resp = client.post(
        "/auth/register-guest",
        json={"email": "walkin@example.com", "password": "longpassword", "displayName": "Walk In"},
    )
    assert resp.status_code == 200
    uid = resp.json()["uid"]

    token = client.post("/auth/login", json={"email": "walkin@example.com", "password": "longpassword"}).json()["access_token"]
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["uid"] == uid
    assert me["role"] == "guest"

    bad = client.post("/auth/login", json={"email": "walkin@example.com", "password": "nope"})
    assert bad.status_code == 401
    assert bad.json() == {"error": "Invalid email or password"}


def test_malformed_body_is_400(client):
    resp = client.post("/auth/register-guest", json={"email": "not-an-email"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing required fields"


def test_admin_user_management(client, db, admin):
    _, headers = admin
    resp = client.post(
        "/users",
        json={"email": "m2@example.com", "password": "longpassword", "displayName": "New Manager", "role": "manager"},
        headers=headers,
    )
    uid = resp.json()["uid"]

    resp = client.patch(f"/users/{uid}", json={"displayName": "Renamed"}, headers=headers)
    assert resp.json()["displayName"] == "Renamed"

    assert client.post(f"/users/{uid}/disable", headers=headers).json() == {"success": True}
    assert _read(db, c.USERS, uid)["disabled"] is True

    assert client.delete(f"/users/{uid}", headers=headers).json() == {"success": True}
    assert client.delete(f"/users/{uid}", headers=headers).status_code == 404


def test_startup_creates_tables_when_enabled(monkeypatch):
    fresh = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    monkeypatch.setattr("plotgate.main.engine", fresh)
    monkeypatch.setattr(settings, "auto_create_db", True)
    assert inspect(fresh).get_table_names() == []

    with TestClient(app) as started:
        assert started.get("/health").json()["status"] == "ok"

    tables = inspect(fresh).get_table_names()
    assert "visit_requests" in tables
    assert "auth_accounts" in tables
    fresh.dispose()
