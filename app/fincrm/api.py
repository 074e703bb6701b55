from __future__ import annotations

from typing import Any

from flask import jsonify


def ok(data: Any = None, status: int = 200, **extra: Any):
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def fail(error: str, status: int):
    return jsonify({"success": False, "error": error}), status


def unauthorized():
    return fail("Unauthorized", 401)


def forbidden():
    return fail("Forbidden", 403)


def bad_request(error: str):
    return fail(error, 400)


def not_found(error: str = "Not found"):
    return fail(error, 404)


def parse_int_arg(raw: str | None, default: int, *, lo: int = 1, hi: int | None = None) -> int:
    try:
        value = int(raw) if raw not in (None, "") else default
    except ValueError:
        value = default
    value = max(lo, value)
    if hi is not None:
        value = min(hi, value)
    return value
