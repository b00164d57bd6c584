"""
Gmail REST client for the inbox summary.
Lists the newest inbox message ids, then fetches each message's metadata
one request at a time.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import httpx

from mail_engine.constants import (
    ERROR_UPSTREAM,
    MAX_INBOX_MESSAGES,
    NO_DATE,
    NO_PREVIEW,
    NO_SUBJECT,
    UNKNOWN_ACCOUNT,
    UNKNOWN_SENDER,
)
from mail_engine.errors import UpstreamApiError
from mail_engine.models import LoginResult, MailMessage, Provider
from mail_engine.providers import ProviderConfig
from mail_engine.text_utils import html_to_text
from mail_engine.transport import first_line, http_client

logger = logging.getLogger(__name__)

USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GMAIL_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"

Params = Union[Dict[str, Any], Sequence[Tuple[str, Any]], None]

# (substrings of the lowercased error message, advice)
_ERROR_HINTS = [
    (
        ("has not been used in project", "is disabled", "accessnotconfigured", "service_disabled"),
        "enable the Gmail API for this project in Google Cloud Console, wait a few minutes and try again",
    ),
    (
        ("insufficient authentication scopes", "insufficient permission", "access_token_scope_insufficient"),
        "sign in again and tick the box that allows reading your Gmail messages",
    ),
    (
        ("access blocked", "access_denied", "has not completed the google verification", "org_internal"),
        "add your Google account as a test user on the app's OAuth consent screen",
    ),
]


def _hint_for(message: str) -> Optional[str]:
    lowered = message.lower()
    for needles, hint in _ERROR_HINTS:
        if any(needle in lowered for needle in needles):
            return hint
    return None


def _error_message(resp: httpx.Response) -> Optional[str]:
    """Pull the human message out of Google's ``{"error": {...}}`` envelope."""
    try:
        js = resp.json()
    except ValueError:
        return None
    if not isinstance(js, dict):
        return None
    err = js.get("error")
    if isinstance(err, dict):
        return err.get("message") or err.get("status")
    if isinstance(err, str):
        return js.get("error_description") or err
    return None


def _upstream_error(resp: httpx.Response, what: str) -> UpstreamApiError:
    message = _error_message(resp)
    hint = _hint_for(message) if message else None
    if message and hint:
        return UpstreamApiError(
            f"{ERROR_UPSTREAM}: Google {what} returned {resp.status_code}: {message}",
            status_code=resp.status_code,
            hint=hint,
        )
    return UpstreamApiError(
        f"{ERROR_UPSTREAM}: Google {what} returned {resp.status_code}: {first_line(resp.text)}",
        status_code=resp.status_code,
    )


async def _get_json(
    http: httpx.AsyncClient, url: str, access_token: str, what: str, params: Params = None
) -> Dict[str, Any]:
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
    try:
        resp = await http.get(url, headers=headers, params=params)
    except httpx.HTTPError as e:
        raise UpstreamApiError(f"{ERROR_UPSTREAM}: could not reach Google {what}") from e
    if not resp.is_success:
        logger.warning("Google %s returned %s", what, resp.status_code)
        raise _upstream_error(resp, what)
    try:
        js = resp.json()
    except ValueError as e:
        raise UpstreamApiError(f"{ERROR_UPSTREAM}: Google {what} returned a non-JSON body") from e
    return js if isinstance(js, dict) else {}


def _header(headers: List[Dict[str, Any]], name: str) -> str:
    wanted = name.lower()
    for h in headers:
        if (h.get("name") or "").lower() == wanted:
            return (h.get("value") or "").strip()
    return ""


def parse_gmail_message(msg: Dict[str, Any]) -> MailMessage:
    headers = (msg.get("payload") or {}).get("headers") or []
    return MailMessage(
        subject=_header(headers, "Subject") or NO_SUBJECT,
        from_=_header(headers, "From") or UNKNOWN_SENDER,
        date=_header(headers, "Date") or NO_DATE,
        body=html_to_text(msg.get("snippet") or "") or NO_PREVIEW,
    )


async def fetch_google_inbox(
    config: ProviderConfig,
    access_token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> LoginResult:
    async with http_client(client) as http:
        profile = await _get_json(http, USERINFO_URL, access_token, "userinfo")
        account = (profile.get("email") or "").strip() or UNKNOWN_ACCOUNT

        listing = await _get_json(
            http,
            f"{GMAIL_BASE}/messages",
            access_token,
            "message list",
            params={"maxResults": MAX_INBOX_MESSAGES, "labelIds": "INBOX"},
        )
        ids = [m.get("id") for m in listing.get("messages") or [] if isinstance(m, dict) and m.get("id")]

        messages: List[MailMessage] = []
        for message_id in ids[:MAX_INBOX_MESSAGES]:
            detail = await _get_json(
                http,
                f"{GMAIL_BASE}/messages/{message_id}",
                access_token,
                "message metadata",
                params=[
                    ("format", "metadata"),
                    ("metadataHeaders", "Subject"),
                    ("metadataHeaders", "From"),
                    ("metadataHeaders", "Date"),
                ],
            )
            messages.append(parse_gmail_message(detail))

    logger.info("Fetched %d Gmail messages", len(messages))
    return LoginResult(provider=Provider.GOOGLE, account=account, messages=messages)
