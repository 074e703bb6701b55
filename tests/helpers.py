from urllib.parse import urlparse

from app.fincrm.db import session_scope
from app.fincrm.models import Employee

PASSWORD = "pw-12345678"


def employee_id(app, email: str) -> int:
    with session_scope(app) as s:
        return s.query(Employee).filter(Employee.email == email).one().id


def login(client, email: str, password: str = PASSWORD, role: str | None = None):
    data = {"email": email, "password": password}
    if role:
        data["role"] = role
    return client.post("/login", data=data, follow_redirects=False)


def csrf_headers(client) -> dict:
    token = client.get("/api/me").get_json()["data"]["csrfToken"]
    return {"X-CSRF-Token": token}


def location_path(response) -> str:
    return urlparse(response.headers["Location"]).path
