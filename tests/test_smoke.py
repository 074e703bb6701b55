from app.fincrm.db import session_scope
from app.fincrm.models import ActivityLog, EmployeeLoginLog
from app.fincrm.roles import Role
from app.fincrm.sessions import Identity

from tests.helpers import csrf_headers, employee_id, location_path, login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").status_code == 200


def test_login_page_renders_for_anonymous(client):
    r = client.get("/login")
    assert r.status_code == 200
    assert b"Sign in" in r.data


def test_anonymous_protected_pages_redirect_to_login(client):
    for path in ("/", "/dashboard", "/equity/dashboard", "/settings", "/notifications"):
        r = client.get(path)
        assert r.status_code == 302
        assert location_path(r) == "/login"


def test_anonymous_api_gets_401_envelope(client):
    r = client.get("/api/notifications")
    assert r.status_code == 401
    assert r.get_json() == {"success": False, "error": "Unauthorized"}


def test_dual_role_login_goes_to_workspace_picker(client):
    r = login(client, "backoffice@example.com")
    assert r.status_code == 302
    assert location_path(r) == "/select-role"


def test_login_is_case_insensitive_on_email(client):
    r = login(client, "  Equity@Example.com ")
    assert location_path(r) == "/equity/dashboard"


def test_failed_logins_look_identical(app, client):
    unknown = login(client, "nobody@example.com")
    wrong = login(client, "equity@example.com", password="not-the-password")
    inactive = login(client, "gone@example.com")
    for r in (unknown, wrong, inactive):
        assert r.status_code == 302
        assert location_path(r) == "/login"
        assert "fincrm_session=" not in " ".join(r.headers.getlist("Set-Cookie"))
    with session_scope(app) as s:
        assert s.query(ActivityLog).filter(ActivityLog.action == "LOGIN_FAILED").count() == 3


def test_login_rate_limit(client):
    for _ in range(5):
        login(client, "equity@example.com", password="bad")
    r = login(client, "equity@example.com")
    assert location_path(r) == "/login"
    assert client.get("/api/me").status_code == 401


def test_authenticated_user_on_login_is_sent_to_dashboard(client):
    login(client, "mf@example.com")
    r = client.get("/login")
    assert r.status_code == 302
    assert location_path(r) == "/mf/dashboard"


def test_equity_dealer_cannot_open_mf_workspace(client):
    login(client, "equity@example.com")
    r = client.get("/mf/dashboard")
    assert r.status_code == 302
    assert location_path(r) == "/equity/dashboard"
    assert client.get("/equity/dashboard").status_code == 200


def test_secondary_admin_role_opens_admin_dashboard(client):
    login(client, "backoffice@example.com")
    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b"Admin Dashboard" in r.data
    assert client.get("/backoffice/dashboard").status_code == 200


def test_admin_pages_closed_to_dealers(client):
    login(client, "equity@example.com")
    for path in ("/dashboard", "/brokerage", "/masters/employees"):
        r = client.get(path)
        assert r.status_code == 302
        assert location_path(r) == "/equity/dashboard"


def test_open_pages_for_any_session(client):
    login(client, "bo@example.com")
    assert client.get("/settings").status_code == 200
    assert client.get("/notifications").status_code == 200


def test_session_cookie_renewed_on_use(client):
    login(client, "equity@example.com")
    r = client.get("/settings")
    cookies = r.headers.getlist("Set-Cookie")
    renewed = [c for c in cookies if c.startswith("fincrm_session=")]
    assert renewed
    assert "HttpOnly" in renewed[0]
    assert "Max-Age=2592000" in renewed[0]


def test_tampered_cookie_is_unauthenticated(client):
    client.set_cookie("fincrm_session", "forged-token")
    r = client.get("/settings")
    assert r.status_code == 302
    assert location_path(r) == "/login"


def test_bearer_token_authenticates_api(app, client):
    provider = app.extensions["session_provider"]
    token = provider.issue_session(
        Identity(
            id=employee_id(app, "mf@example.com"),
            email="mf@example.com",
            name="MF Dealer",
            role=Role.MF_DEALER,
            secondary_role=None,
            department="MUTUAL_FUND",
            designation="MF Dealer",
        )
    )
    r = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.get_json()["data"]["role"] == "MF_DEALER"


def test_logout_clears_session_and_closes_login_log(app, client):
    login(client, "equity@example.com")
    r = client.get("/logout")
    assert location_path(r) == "/login"
    assert client.get("/api/me").status_code == 401
    with session_scope(app) as s:
        log = s.query(EmployeeLoginLog).one()
        assert log.logout_at is not None
        actions = [a.action for a in s.query(ActivityLog).order_by(ActivityLog.id).all()]
    assert actions == ["LOGIN", "LOGOUT"]


def test_csrf_required_for_cookie_mutations(client):
    login(client, "equity@example.com")
    r = client.post("/api/heartbeat")
    assert r.status_code == 400
    r = client.post("/api/heartbeat", headers=csrf_headers(client))
    assert r.status_code == 200
    assert r.get_json() == {"success": True}
