"""OAuth 2.0 Authorization Code Flow with PKCE (S256)."""
from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote, urlencode

import httpx

from mail_engine.constants import CSRF_TOKEN_BYTES, ERROR_TOKEN_EXCHANGE, PKCE_VERIFIER_BYTES
from mail_engine.errors import TokenExchangeError
from mail_engine.models import Provider, TokenSet
from mail_engine.providers import ProviderConfig
from mail_engine.transport import http_client

logger = logging.getLogger(__name__)


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _gen_code_verifier() -> str:
    # 43-128 chars
    return _b64url(secrets.token_bytes(PKCE_VERIFIER_BYTES))


def _code_challenge_s256(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode()).digest()
    return _b64url(digest)


def generate_pkce_pair() -> Tuple[str, str]:
    """Return ``(verifier, challenge)``."""
    verifier = _gen_code_verifier()
    return verifier, _code_challenge_s256(verifier)


def generate_csrf_token() -> str:
    return _b64url(secrets.token_bytes(CSRF_TOKEN_BYTES))


def build_authorization_url(
    config: ProviderConfig,
    code_challenge: str,
    state: str,
    force_consent: bool = False,
) -> str:
    params: Dict[str, str] = {
        "client_id": config.client_id,
        "response_type": "code",
        "redirect_uri": config.redirect_uri,
        "scope": " ".join(config.scopes),
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if config.provider is Provider.GOOGLE:
        if force_consent:
            # Google only hands out a refresh token on an offline, consented grant
            params["access_type"] = "offline"
            params["prompt"] = "consent"
    else:
        params["response_mode"] = "query"
    return f"{config.auth_url}?{urlencode(params, quote_via=quote)}"


async def _post_token_request(
    config: ProviderConfig,
    data: Dict[str, str],
    client: Optional[httpx.AsyncClient],
) -> TokenSet:
    if config.client_secret:
        data["client_secret"] = config.client_secret

    async with http_client(client) as http:
        try:
            resp = await http.post(
                config.token_url,
                data=data,
                headers={"Accept": "application/json"},
                follow_redirects=False,
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(
                f"{ERROR_TOKEN_EXCHANGE}: could not reach the {config.label} token endpoint"
            ) from e

    if resp.is_redirect:
        raise TokenExchangeError(
            f"{ERROR_TOKEN_EXCHANGE}: {config.label} token endpoint answered with a redirect "
            f"({resp.status_code}) instead of tokens"
        )
    if not resp.is_success:
        snippet = (resp.text or "")[:300].replace("\n", " ")
        logger.warning("%s token endpoint returned %s", config.label, resp.status_code)
        raise TokenExchangeError(f"{ERROR_TOKEN_EXCHANGE}: {resp.status_code} - {snippet}")

    try:
        js: Any = resp.json()
    except ValueError as e:
        raise TokenExchangeError(
            f"{ERROR_TOKEN_EXCHANGE}: {config.label} token endpoint returned a non-JSON body"
        ) from e
    if not isinstance(js, dict) or not js.get("access_token"):
        raise TokenExchangeError(f"{ERROR_TOKEN_EXCHANGE}: no access_token in {config.label} response")

    refresh_token = (js.get("refresh_token") or "").strip() or None  # may be None if not rotated
    return TokenSet(access_token=js["access_token"], refresh_token=refresh_token)


async def exchange_code(
    config: ProviderConfig,
    code: str,
    pkce_verifier: str,
    client: Optional[httpx.AsyncClient] = None,
) -> TokenSet:
    data = {
        "grant_type": "authorization_code",
        "client_id": config.client_id,
        "code": code,
        "redirect_uri": config.redirect_uri,
        "code_verifier": pkce_verifier,
    }
    tokens = await _post_token_request(config, data, client)
    logger.info(
        "Exchanged authorization code with %s (refresh token issued: %s)",
        config.label,
        tokens.refresh_token is not None,
    )
    return tokens


async def exchange_refresh(
    config: ProviderConfig,
    refresh_token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> TokenSet:
    # No scope on refresh; the server keeps what was granted
    data = {
        "grant_type": "refresh_token",
        "client_id": config.client_id,
        "refresh_token": refresh_token,
    }
    tokens = await _post_token_request(config, data, client)
    logger.info(
        "Refreshed %s access token (refresh token rotated: %s)",
        config.label,
        tokens.refresh_token is not None,
    )
    return tokens
