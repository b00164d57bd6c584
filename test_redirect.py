from __future__ import annotations

import pytest

from mail_engine.constants import DEFAULT_REDIRECT_URI
from mail_engine.errors import ConfigurationError
from mail_engine.models import RedirectTarget
from mail_engine.redirect import resolve_redirect_target


def test_default_redirect_uri_resolves() -> None:
    assert resolve_redirect_target(DEFAULT_REDIRECT_URI) == RedirectTarget(
        host="127.0.0.1", port=8765, path="/oauth/callback"
    )


def test_localhost_without_port_uses_http_default() -> None:
    assert resolve_redirect_target("http://LOCALHOST/cb") == RedirectTarget("localhost", 80, "/cb")


@pytest.mark.parametrize(
    "uri",
    [
        "https://127.0.0.1:8765/oauth/callback",
        "ftp://127.0.0.1:8765/oauth/callback",
        "http://example.com:8765/oauth/callback",
        "http://0.0.0.0:8765/oauth/callback",
        "http://127.0.0.1:8765",
        "http://127.0.0.1:8765/",
        "http://127.0.0.1:0/oauth/callback",
        "http://127.0.0.1:99999/oauth/callback",
        "http://127.0.0.1:port/oauth/callback",
        "",
    ],
)
def test_unusable_redirect_uris_are_rejected(uri: str) -> None:
    with pytest.raises(ConfigurationError):
        resolve_redirect_target(uri)
