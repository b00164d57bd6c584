from __future__ import annotations

from urllib.parse import urlsplit

from mail_engine.constants import LOOPBACK_HOSTS
from mail_engine.errors import ConfigurationError
from mail_engine.models import RedirectTarget


def resolve_redirect_target(redirect_uri: str) -> RedirectTarget:
    """Split a loopback redirect URI into the host, port and path to listen on.

    Raises ConfigurationError for anything the local listener cannot serve,
    so a bad setting is reported before a socket is bound.
    """
    uri = (redirect_uri or "").strip()
    try:
        parts = urlsplit(uri)
        port = parts.port
    except ValueError as e:
        raise ConfigurationError(f"Redirect URI {uri!r} is not a valid URL") from e

    if parts.scheme.lower() != "http":
        raise ConfigurationError(
            f"Redirect URI {uri!r} must use plain http; the local listener does not speak TLS"
        )
    host = (parts.hostname or "").lower()
    if host not in LOOPBACK_HOSTS:
        raise ConfigurationError(
            f"Redirect URI host must be one of {', '.join(LOOPBACK_HOSTS)}, got {host or 'nothing'!r}"
        )
    if port is None:
        port = 80
    if port == 0:
        raise ConfigurationError(f"Redirect URI {uri!r} does not name a usable port")
    path = parts.path
    if not path or path == "/":
        raise ConfigurationError(
            f"Redirect URI {uri!r} needs a callback path such as /oauth/callback"
        )
    return RedirectTarget(host=host, port=port, path=path)
