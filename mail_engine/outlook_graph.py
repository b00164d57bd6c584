"""
Microsoft Graph API client for reading Outlook emails
Works with the Mail.Read and User.Read scopes
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

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
from mail_engine.text_utils import html_to_text, iso_to_rfc2822
from mail_engine.transport import first_line, http_client

logger = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.microsoft.com/v1.0"

_ERROR_HINTS = {
    "mailboxnotenabledforrestapi": "this account has no Exchange Online mailbox; sign in with an Outlook.com or Microsoft 365 mail account",
    "invalidauthenticationtoken": "sign in again; the access token was rejected by Microsoft Graph",
    "erroraccessdenied": "sign in again and accept the Mail.Read permission",
}


def _upstream_error(resp: httpx.Response, what: str) -> UpstreamApiError:
    code = ""
    message = ""
    try:
        err = (resp.json() or {}).get("error") or {}
        if isinstance(err, dict):
            code = err.get("code") or ""
            message = err.get("message") or ""
    except (ValueError, AttributeError):
        pass
    hint = _ERROR_HINTS.get(code.lower()) if code else None
    detail = f"{code}: {message}" if code and message else (message or code or first_line(resp.text))
    return UpstreamApiError(
        f"{ERROR_UPSTREAM}: Microsoft Graph {what} returned {resp.status_code}: {detail}",
        status_code=resp.status_code,
        hint=hint,
    )


async def _graph_get(
    http: httpx.AsyncClient, path: str, access_token: str, what: str, params: Dict[str, str]
) -> Dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/json",
    }
    try:
        resp = await http.get(f"{GRAPH_BASE}{path}", headers=headers, params=params)
    except httpx.HTTPError as e:
        raise UpstreamApiError(f"{ERROR_UPSTREAM}: could not reach Microsoft Graph {what}") from e
    if not resp.is_success:
        logger.warning("Graph API %s returned %s", what, resp.status_code)
        raise _upstream_error(resp, what)
    try:
        js = resp.json()
    except ValueError as e:
        raise UpstreamApiError(f"{ERROR_UPSTREAM}: Microsoft Graph {what} returned a non-JSON body") from e
    return js if isinstance(js, dict) else {}


def parse_graph_message(msg: Dict[str, Any]) -> MailMessage:
    """
    Convert a Graph API message to a MailMessage.
    """
    # Extract sender
    from_obj = (msg.get("from") or {}).get("emailAddress") or {}
    from_addr = (from_obj.get("address") or "").strip()
    from_name = (from_obj.get("name") or "").strip()
    if from_name and from_addr and from_name != from_addr:
        from_header = f"{from_name} <{from_addr}>"
    else:
        from_header = from_addr or from_name

    subject = (msg.get("subject") or "").strip()
    date_header = iso_to_rfc2822(msg.get("receivedDateTime"))
    preview = html_to_text(msg.get("bodyPreview") or "")

    return MailMessage(
        subject=subject or NO_SUBJECT,
        from_=from_header or UNKNOWN_SENDER,
        date=date_header or NO_DATE,
        body=preview or NO_PREVIEW,
    )


async def fetch_outlook_inbox(
    config: ProviderConfig,
    access_token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> LoginResult:
    async with http_client(client) as http:
        me = await _graph_get(
            http, "/me", access_token, "profile", {"$select": "mail,userPrincipalName"}
        )
        account = (me.get("mail") or me.get("userPrincipalName") or "").strip() or UNKNOWN_ACCOUNT

        result = await _graph_get(
            http,
            "/me/messages",
            access_token,
            "message list",
            {
                "$top": str(MAX_INBOX_MESSAGES),
                "$select": "subject,from,receivedDateTime,bodyPreview",
                "$orderby": "receivedDateTime desc",
            },
        )

    raw = [m for m in result.get("value") or [] if isinstance(m, dict)]
    messages: List[MailMessage] = [parse_graph_message(m) for m in raw[:MAX_INBOX_MESSAGES]]
    logger.info("Fetched %d Outlook messages", len(messages))
    return LoginResult(provider=Provider.OUTLOOK, account=account, messages=messages)
