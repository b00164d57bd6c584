"""Configuration management."""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from mail_engine.constants import (
    DEFAULT_API_HOST,
    DEFAULT_API_PORT,
    DEFAULT_CALLBACK_READ_TIMEOUT_SECONDS,
    DEFAULT_CALLBACK_TIMEOUT_SECONDS,
    DEFAULT_DB_PATH,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_REDIRECT_URI,
)

# Load env from the working directory and next to the package
load_dotenv()
load_dotenv(Path(__file__).with_name(".env"))


def _get_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def get_ui_origins() -> List[str]:
    """Get allowed UI origins from environment variable."""
    origin_str = os.environ.get("UI_ORIGIN", "http://localhost:3000")
    # Support comma-separated origins
    origins = [o.strip() for o in origin_str.split(",") if o.strip()]
    return origins if origins else ["http://localhost:3000"]


def get_google_client_id() -> str:
    """Get the Google OAuth client ID used when none is saved."""
    return (os.environ.get("GOOGLE_CLIENT_ID") or "").strip()


def get_google_client_secret() -> str:
    """Get the Google OAuth client secret used when none is saved."""
    return (os.environ.get("GOOGLE_CLIENT_SECRET") or "").strip()


def get_oauth_redirect_uri() -> str:
    """Get the loopback redirect URI registered with the providers."""
    return (os.environ.get("MAIL_OAUTH_REDIRECT_URI") or "").strip() or DEFAULT_REDIRECT_URI


def get_db_path() -> Path:
    """Get the SQLite file holding client credentials and refresh tokens."""
    return Path((os.environ.get("MAIL_ENGINE_DB_PATH") or "").strip() or DEFAULT_DB_PATH)


def get_callback_timeout() -> float:
    """Seconds to wait for the browser to hit the redirect endpoint."""
    return _get_float("MAIL_OAUTH_CALLBACK_TIMEOUT", DEFAULT_CALLBACK_TIMEOUT_SECONDS)


def get_callback_read_timeout() -> float:
    """Seconds allowed for each read from the callback connection."""
    return _get_float("MAIL_OAUTH_CALLBACK_READ_TIMEOUT", DEFAULT_CALLBACK_READ_TIMEOUT_SECONDS)


def get_http_timeout() -> float:
    """Timeout for token endpoint and mail API requests."""
    return _get_float("MAIL_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT_SECONDS)


def get_api_host() -> str:
    return os.environ.get("MAIL_API_HOST", DEFAULT_API_HOST)


def get_api_port() -> int:
    try:
        return int(os.environ.get("MAIL_API_PORT", str(DEFAULT_API_PORT)))
    except ValueError:
        return DEFAULT_API_PORT
