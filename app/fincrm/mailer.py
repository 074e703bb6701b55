from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Protocol

from flask import Flask, current_app
from markupsafe import escape

logger = logging.getLogger(__name__)


class MailError(RuntimeError):
    pass


class Mailer(Protocol):
    def send(self, *, to: str, subject: str, html: str) -> None: ...


@dataclass(frozen=True)
class LogMailer:
    """Development backend: writes the message to the log instead of sending it."""

    sender: str

    def send(self, *, to: str, subject: str, html: str) -> None:
        logger.info("MAIL (log backend) from=%s to=%s subject=%s\n%s", self.sender, to, subject, html)


@dataclass(frozen=True)
class ResendMailer:
    api_key: str
    sender: str
    base_url: str = "https://api.resend.com"
    timeout_seconds: int = 15

    def send(self, *, to: str, subject: str, html: str) -> None:
        body = json.dumps({"from": self.sender, "to": [to], "subject": subject, "html": html}).encode("utf-8")
        req = urllib.request.Request(self.base_url.rstrip("/") + "/emails", data=body, method="POST")
        req.add_header("Authorization", f"Bearer {self.api_key}")
        req.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                resp.read()
        except urllib.error.HTTPError as e:
            raise MailError(f"Resend rejected message (HTTP {e.code})") from e
        except urllib.error.URLError as e:
            raise MailError(f"Resend unreachable: {e.reason}") from e


def init_mailer(app: Flask) -> Mailer:
    backend = app.config.get("MAIL_BACKEND") or "log"
    sender = app.config.get("MAIL_FROM") or "noreply@financecrm.com"
    if backend == "resend":
        key = app.config.get("RESEND_API_KEY") or ""
        if not key:
            raise RuntimeError("MAIL_BACKEND=resend requires RESEND_API_KEY.")
        mailer: Mailer = ResendMailer(api_key=key, sender=sender)
    elif backend == "log":
        mailer = LogMailer(sender=sender)
    else:
        raise RuntimeError(f"Unknown MAIL_BACKEND {backend!r} (expected 'log' or 'resend').")
    app.extensions["mailer"] = mailer
    return mailer


def get_mailer() -> Mailer:
    return current_app.extensions["mailer"]


def otp_email_html(name: str, otp: str, ttl_minutes: int) -> str:
    return (
        '<div style="font-family:sans-serif;max-width:480px;margin:0 auto;padding:24px">'
        '<h2 style="color:#1B73E8">Password Reset</h2>'
        f"<p>Hi {escape(name)},</p>"
        f"<p>Use the OTP below to reset your FinanceCRM password. It expires in <strong>{ttl_minutes} minutes</strong>.</p>"
        '<div style="background:#F3F4F6;border-radius:8px;padding:20px;text-align:center;margin:24px 0">'
        f'<span style="font-size:36px;font-weight:700;letter-spacing:12px;color:#1B73E8">{otp}</span>'
        "</div>"
        '<p style="color:#888;font-size:13px">If you did not request this, ignore this email. '
        "Your password will not change.</p>"
        "</div>"
    )
