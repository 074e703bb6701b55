import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    session_cookie_name: str
    session_max_age_days: int

    otp_ttl_minutes: int
    reset_token_ttl_minutes: int

    mail_backend: str
    mail_from: str
    resend_api_key: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///fincrm.db"),
        session_cookie_name=_getenv("SESSION_TOKEN_COOKIE", "fincrm_session"),
        session_max_age_days=_getenv_int("SESSION_MAX_AGE_DAYS", 30),
        otp_ttl_minutes=_getenv_int("OTP_TTL_MINUTES", 10),
        reset_token_ttl_minutes=_getenv_int("RESET_TOKEN_TTL_MINUTES", 15),
        mail_backend=_getenv("MAIL_BACKEND", "log").lower(),
        mail_from=_getenv("MAIL_FROM", "noreply@financecrm.com"),
        resend_api_key=_getenv("RESEND_API_KEY", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "SESSION_TOKEN_COOKIE": s.session_cookie_name,
        "SESSION_MAX_AGE_DAYS": s.session_max_age_days,
        "OTP_TTL_MINUTES": s.otp_ttl_minutes,
        "RESET_TOKEN_TTL_MINUTES": s.reset_token_ttl_minutes,
        "MAIL_BACKEND": s.mail_backend,
        "MAIL_FROM": s.mail_from,
        "RESEND_API_KEY": s.resend_api_key,
        # security defaults (apply to both the Flask session and the auth token cookie)
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
    }
