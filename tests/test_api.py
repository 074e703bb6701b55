from datetime import datetime, timedelta

from app.fincrm.db import session_scope
from app.fincrm.models import Employee, Notification, PasswordResetToken
from app.fincrm.notifications import create_notification, create_notification_for_many

from tests.helpers import csrf_headers, employee_id, location_path, login


def _notify(app, email: str, *, title: str = "Task assigned", is_read: bool = False) -> int:
    with session_scope(app) as s:
        n = create_notification(
            s,
            user_id=employee_id(app, email),
            type="TASK_ASSIGNED",
            title=title,
            message="You have a new task",
            link="/equity/tasks",
        )
        n.is_read = is_read
        s.flush()
        return n.id


def _latest_otp(app, email: str) -> str:
    with session_scope(app) as s:
        return s.query(PasswordResetToken).filter(PasswordResetToken.email == email).one().otp


# --- /api/me and active role ---


def test_me_reports_roles_for_dual_role_user(client):
    login(client, "backoffice@example.com")
    data = client.get("/api/me").get_json()["data"]
    assert data["role"] == "BACK_OFFICE"
    assert data["secondaryRole"] == "ADMIN"
    assert data["effectiveRole"] == "ADMIN"
    assert data["activeRole"] == "BACK_OFFICE"
    assert [r["role"] for r in data["roles"]] == ["BACK_OFFICE", "ADMIN"]
    assert data["csrfToken"]


def test_login_with_chosen_secondary_role(client):
    r = login(client, "dual@example.com", role="MF_DEALER")
    assert location_path(r) == "/mf/dashboard"
    assert client.get("/api/me").get_json()["data"]["activeRole"] == "MF_DEALER"
    assert client.get("/mf/dashboard").status_code == 200


def test_login_ignores_role_the_user_does_not_hold(client):
    r = login(client, "equity@example.com", role="SUPER_ADMIN")
    assert location_path(r) == "/equity/dashboard"
    assert client.get("/api/me").get_json()["data"]["activeRole"] == "EQUITY_DEALER"


def test_switch_active_role(client):
    login(client, "dual@example.com")
    headers = csrf_headers(client)

    r = client.post("/api/active-role", json={"role": "OWNER"}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/active-role", json={"role": "ADMIN"}, headers=headers)
    assert r.status_code == 403

    r = client.post("/api/active-role", json={"role": "MF_DEALER"}, headers=headers)
    assert r.status_code == 200
    assert r.get_json()["data"] == {"activeRole": "MF_DEALER", "redirect": "/mf/dashboard"}

    assert client.get("/api/me").get_json()["data"]["activeRole"] == "MF_DEALER"
    assert location_path(client.get("/")) == "/mf/dashboard"


def test_switch_active_role_requires_csrf(client):
    login(client, "dual@example.com")
    assert client.post("/api/active-role", json={"role": "MF_DEALER"}).status_code == 400


def test_active_role_resets_for_different_user_in_same_browser(client):
    login(client, "dual@example.com", role="MF_DEALER")
    client.delete_cookie("fincrm_session")
    login(client, "backoffice@example.com")
    assert client.get("/api/me").get_json()["data"]["activeRole"] == "BACK_OFFICE"


def test_heartbeat_updates_last_seen(app, client):
    login(client, "mf@example.com")
    assert client.post("/api/heartbeat", headers=csrf_headers(client)).status_code == 200
    with session_scope(app) as s:
        assert s.query(Employee).filter(Employee.email == "mf@example.com").one().last_seen_at is not None


# --- notifications ---


def test_notifications_list_and_unread_count(app, client):
    _notify(app, "equity@example.com", title="first")
    _notify(app, "equity@example.com", title="second", is_read=True)
    _notify(app, "mf@example.com", title="not mine")
    login(client, "equity@example.com")

    data = client.get("/api/notifications").get_json()["data"]
    assert {n["title"] for n in data["notifications"]} == {"first", "second"}
    assert data["unreadCount"] == 1

    data = client.get("/api/notifications?unreadOnly=true").get_json()["data"]
    assert [n["title"] for n in data["notifications"]] == ["first"]

    data = client.get("/api/notifications?limit=1").get_json()["data"]
    assert len(data["notifications"]) == 1


def test_mark_notification_read(app, client):
    mine = _notify(app, "equity@example.com")
    theirs = _notify(app, "mf@example.com")
    login(client, "equity@example.com")
    headers = csrf_headers(client)

    r = client.patch(f"/api/notifications/{mine}/read", headers=headers)
    assert r.status_code == 200
    assert r.get_json()["data"]["isRead"] is True

    assert client.patch(f"/api/notifications/{theirs}/read", headers=headers).status_code == 403
    assert client.patch("/api/notifications/99999/read", headers=headers).status_code == 404
    assert client.patch(f"/api/notifications/{mine}/read").status_code == 400


def test_mark_all_read(app, client):
    with session_scope(app) as s:
        uid = employee_id(app, "equity@example.com")
        create_notification_for_many(
            s, user_ids=[uid, uid, employee_id(app, "mf@example.com")], type="BROADCAST", title="t", message="m"
        )
    login(client, "equity@example.com")
    r = client.patch("/api/notifications/mark-all-read", headers=csrf_headers(client))
    assert r.get_json()["data"] == {"updatedCount": 1}
    with session_scope(app) as s:
        assert s.query(Notification).filter(Notification.is_read.is_(False)).count() == 1


# --- employees ---

NEW_EMPLOYEE = {
    "name": "New Dealer",
    "email": "New.Dealer@Example.com",
    "department": "EQUITY",
    "designation": "Dealer",
    "role": "EQUITY_DEALER",
    "secondaryRole": "MF_DEALER",
    "password": "long-enough-pw",
}


def test_employees_list_filters(client):
    login(client, "equity@example.com")
    rows = client.get("/api/employees?department=BACK_OFFICE").get_json()["data"]
    assert {r["email"] for r in rows} == {"backoffice@example.com", "bo@example.com"}
    rows = client.get("/api/employees?isActive=false").get_json()["data"]
    assert [r["email"] for r in rows] == ["gone@example.com"]
    rows = client.get("/api/employees?search=dual").get_json()["data"]
    assert rows[0]["secondaryRole"] == "MF_DEALER"
    assert "password_hash" not in rows[0] and "passwordHash" not in rows[0]


def test_create_employee_requires_admin_role(client):
    login(client, "equity@example.com")
    r = client.post("/api/employees", json=NEW_EMPLOYEE, headers=csrf_headers(client))
    assert r.status_code == 403


def test_create_employee_through_secondary_admin_role(client):
    login(client, "backoffice@example.com")
    r = client.post("/api/employees", json=NEW_EMPLOYEE, headers=csrf_headers(client))
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["email"] == "new.dealer@example.com"
    assert (data["role"], data["secondaryRole"]) == ("EQUITY_DEALER", "MF_DEALER")


def test_create_employee_validation_and_duplicates(client):
    login(client, "admin@example.com")
    headers = csrf_headers(client)
    r = client.post("/api/employees", json={**NEW_EMPLOYEE, "role": "OWNER"}, headers=headers)
    assert r.status_code == 400
    r = client.post("/api/employees", json={**NEW_EMPLOYEE, "password": "short"}, headers=headers)
    assert r.status_code == 400
    r = client.post("/api/employees", json={**NEW_EMPLOYEE, "email": "EQUITY@example.com"}, headers=headers)
    assert r.status_code == 409


def test_new_employee_can_log_in(client):
    login(client, "admin@example.com")
    client.post("/api/employees", json=NEW_EMPLOYEE, headers=csrf_headers(client))
    client.get("/logout")
    r = login(client, "new.dealer@example.com", password="long-enough-pw", role="MF_DEALER")
    assert location_path(r) == "/mf/dashboard"


# --- admin presence and history ---


def test_admin_endpoints_need_admin_effective_role(client):
    assert client.get("/api/admin/employee-status").status_code == 401
    login(client, "dual@example.com")
    assert client.get("/api/admin/employee-status").status_code == 403
    assert client.get("/api/admin/login-history").status_code == 403


def test_employee_status_shows_todays_sessions(client):
    login(client, "equity@example.com")
    client.post("/api/heartbeat", headers=csrf_headers(client))
    client.get("/logout")
    login(client, "backoffice@example.com")

    rows = {r["name"]: r for r in client.get("/api/admin/employee-status").get_json()["data"]}
    assert "Former Employee" not in rows
    equity = rows["Equity Dealer"]
    assert equity["isOnline"] is True
    assert equity["todaySessionCount"] == 1
    assert equity["lastLogoutToday"] is not None
    assert rows["MF Dealer"]["isOnline"] is False


def test_login_history_paginates_and_filters(app, client):
    login(client, "equity@example.com")
    client.get("/logout")
    login(client, "admin@example.com")

    body = client.get("/api/admin/login-history?limit=1").get_json()
    assert body["pagination"] == {"total": 2, "page": 1, "limit": 1, "pages": 2}
    assert len(body["data"]) == 1

    uid = employee_id(app, "equity@example.com")
    body = client.get(f"/api/admin/login-history?employeeId={uid}").get_json()
    assert [row["employee"]["name"] for row in body["data"]] == ["Equity Dealer"]
    assert body["data"][0]["logoutAt"] is not None

    assert client.get("/api/admin/login-history?employeeId=abc").status_code == 400
    assert client.get("/api/admin/login-history?date=yesterday").status_code == 400


# --- activity log ---


def test_activity_log_is_super_admin_only(client):
    login(client, "admin@example.com")
    assert client.get("/api/settings/activity-log").status_code == 403
    client.get("/logout")

    login(client, "super@example.com")
    data = client.get("/api/settings/activity-log?module=AUTH").get_json()["data"]
    assert data["total"] == 3
    assert data["logs"][0]["action"] == "LOGIN"
    assert data["logs"][0]["user"] == {"name": "Super Admin"}


# --- password reset ---


def test_forgot_password_does_not_reveal_accounts(app, client):
    r = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert r.get_json() == {"success": True}
    r = client.post("/api/auth/forgot-password", json={"email": "gone@example.com"})
    assert r.get_json() == {"success": True}
    assert client.post("/api/auth/forgot-password", json={}).status_code == 400
    with session_scope(app) as s:
        assert s.query(PasswordResetToken).count() == 0


def test_password_reset_flow(app, client):
    r = client.post("/api/auth/forgot-password", json={"email": "MF@example.com"})
    assert r.get_json() == {"success": True}
    otp = _latest_otp(app, "mf@example.com")
    assert len(otp) == 6

    r = client.post("/api/auth/verify-otp", json={"email": "mf@example.com", "otp": "000000" if otp != "000000" else "111111"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Incorrect OTP"

    r = client.post("/api/auth/verify-otp", json={"email": "mf@example.com", "otp": otp})
    token = r.get_json()["data"]["token"]

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "short"})
    assert r.status_code == 400

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pw"})
    assert r.get_json() == {"success": True}

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pw"})
    assert r.status_code == 400

    assert location_path(login(client, "mf@example.com")) == "/login"
    assert location_path(login(client, "mf@example.com", password="brand-new-pw")) == "/mf/dashboard"


def test_expired_otp_is_rejected_and_removed(app, client):
    client.post("/api/auth/forgot-password", json={"email": "mf@example.com"})
    with session_scope(app) as s:
        record = s.query(PasswordResetToken).one()
        record.expires_at = datetime.utcnow() - timedelta(minutes=1)
        otp = record.otp

    r = client.post("/api/auth/verify-otp", json={"email": "mf@example.com", "otp": otp})
    assert r.status_code == 400
    assert r.get_json()["error"] == "OTP has expired. Request a new one."
    with session_scope(app) as s:
        assert s.query(PasswordResetToken).count() == 0


def test_forgot_password_reports_mail_failure(app, client):
    from app.fincrm.mailer import MailError

    class FailingMailer:
        def send(self, *, to, subject, html):
            raise MailError("down")

    app.extensions["mailer"] = FailingMailer()
    r = client.post("/api/auth/forgot-password", json={"email": "mf@example.com"})
    assert r.status_code == 500
    assert r.get_json() == {"success": False, "error": "Failed to send OTP"}


def test_creating_employee_notifies_other_admins(app, client):
    login(client, "admin@example.com")
    client.post("/api/employees", json=NEW_EMPLOYEE, headers=csrf_headers(client))

    with session_scope(app) as s:
        rows = s.query(Notification).filter(Notification.type == "EMPLOYEE_CREATED").all()
        recipients = {r.user_id for r in rows}
    assert recipients == {employee_id(app, "super@example.com"), employee_id(app, "backoffice@example.com")}

    client.get("/logout")
    login(client, "super@example.com")
    data = client.get("/api/notifications").get_json()["data"]
    assert data["unreadCount"] == 1
    assert data["notifications"][0]["message"] == "New Dealer (new.dealer@example.com) joined as Equity Dealer."


def test_password_reset_notifies_the_employee(app, client):
    client.post("/api/auth/forgot-password", json={"email": "mf@example.com"})
    r = client.post("/api/auth/verify-otp", json={"email": "mf@example.com", "otp": _latest_otp(app, "mf@example.com")})
    client.post("/api/auth/reset-password", json={"token": r.get_json()["data"]["token"], "password": "brand-new-pw"})

    with session_scope(app) as s:
        n = s.query(Notification).one()
        assert (n.user_id, n.type, n.is_read) == (employee_id(app, "mf@example.com"), "PASSWORD_CHANGED", False)
