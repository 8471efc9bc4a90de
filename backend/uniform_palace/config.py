# backend/uniform_palace/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/uniform_palace.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///uniform_palace.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Password hashing cost (tests lower this)
    BCRYPT_LOG_ROUNDS = int(os.environ.get("BCRYPT_LOG_ROUNDS", "12"))

    # Staff session lifetime
    SESSION_ABSOLUTE_HOURS = int(os.environ.get("SESSION_ABSOLUTE_HOURS", "24"))
    SESSION_IDLE_MINUTES = int(os.environ.get("SESSION_IDLE_MINUTES", "120"))

    # Browser origins allowed to call the API
    FRONTEND_ORIGINS = [
        o.strip()
        for o in os.environ.get("FRONTEND_ORIGINS", "http://localhost:5000,http://127.0.0.1:5000").split(",")
        if o.strip()
    ]

    # Outbound mail (notifications are skipped unless MAIL_ENABLED)
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@uniformpalace.com")
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5000")
    MAIL_ENABLED = _env_flag("MAIL_ENABLED", False)
    MAIL_ASYNC = _env_flag("MAIL_ASYNC", True)
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "noreply@uniformpalace.com")
    MAIL_TIMEOUT_SECONDS = int(os.environ.get("MAIL_TIMEOUT_SECONDS", "10"))
    # Record messages in app.extensions["mail_outbox"] instead of sending
    MAIL_SUPPRESS_SEND = _env_flag("MAIL_SUPPRESS_SEND", False)

    # Product image uploads
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
    MAX_IMAGE_BYTES = 10 * 1024 * 1024
    MAX_IMAGES_PER_UPLOAD = 5
    MAX_CONTENT_LENGTH = MAX_IMAGE_BYTES * MAX_IMAGES_PER_UPLOAD + 1024 * 1024
