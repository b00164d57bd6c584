from __future__ import annotations

import httpx
import pytest

from conftest import GOOGLE_CLIENT_ID, OUTLOOK_CLIENT_ID, FakeUpstream
from mail_engine.constants import NO_DATE, NO_PREVIEW, NO_SUBJECT, UNKNOWN_ACCOUNT, UNKNOWN_SENDER
from mail_engine.errors import UpstreamApiError
from mail_engine.inbox import fetch_inbox
from mail_engine.models import MailMessage, Provider, ProviderCredentials
from mail_engine.providers import build_provider_config

REDIRECT = "http://127.0.0.1:8765/oauth/callback"
USERINFO = "https://www.googleapis.com/oauth2/v2/userinfo"
GMAIL = "https://gmail.googleapis.com/gmail/v1/users/me"
GRAPH = "https://graph.microsoft.com/v1.0"

GOOGLE = build_provider_config(Provider.GOOGLE, ProviderCredentials(client_id=GOOGLE_CLIENT_ID), REDIRECT)
OUTLOOK = build_provider_config(Provider.OUTLOOK, ProviderCredentials(client_id=OUTLOOK_CLIENT_ID), REDIRECT)


def gmail_message(message_id: str, headers: dict, snippet: str = "") -> dict:
    return {
        "id": message_id,
        "snippet": snippet,
        "payload": {"headers": [{"name": k, "value": v} for k, v in headers.items()]},
    }


@pytest.mark.asyncio
async def test_gmail_fetches_identity_list_and_each_message() -> None:
    upstream = (
        FakeUpstream()
        .add("GET", USERINFO, (200, {"email": "me@gmail.com"}))
        .add("GET", f"{GMAIL}/messages", (200, {"messages": [{"id": "m1"}, {"id": "m2"}]}))
        .add(
            "GET",
            f"{GMAIL}/messages/m1",
            (200, gmail_message("m1", {"Subject": "Hello", "From": "A <a@x.test>", "Date": "Fri, 03 Oct 2025 19:19:31 +0000"}, "Tom &amp; Jerry")),
        )
        .add("GET", f"{GMAIL}/messages/m2", (200, gmail_message("m2", {})))
    )

    async with upstream.client() as http:
        result = await fetch_inbox(GOOGLE, "T", http)

    assert result.provider is Provider.GOOGLE
    assert result.account == "me@gmail.com"
    assert result.messages == [
        MailMessage(subject="Hello", from_="A <a@x.test>", date="Fri, 03 Oct 2025 19:19:31 +0000", body="Tom & Jerry"),
        MailMessage(subject=NO_SUBJECT, from_=UNKNOWN_SENDER, date=NO_DATE, body=NO_PREVIEW),
    ]

    assert all(r.headers["Authorization"] == "Bearer T" for r in upstream.requests)
    listing = upstream.requests[1]
    assert listing.url.params["maxResults"] == "20"
    assert listing.url.params["labelIds"] == "INBOX"
    detail = upstream.requests[2]
    assert detail.url.params["format"] == "metadata"
    assert detail.url.params.get_list("metadataHeaders") == ["Subject", "From", "Date"]
    assert len(upstream.requests) == 4


@pytest.mark.asyncio
async def test_gmail_empty_inbox_and_missing_email() -> None:
    upstream = (
        FakeUpstream()
        .add("GET", USERINFO, (200, {}))
        .add("GET", f"{GMAIL}/messages", (200, {"resultSizeEstimate": 0}))
    )

    async with upstream.client() as http:
        result = await fetch_inbox(GOOGLE, "T", http)

    assert result.account == UNKNOWN_ACCOUNT
    assert result.messages == []


@pytest.mark.asyncio
async def test_gmail_api_disabled_gets_a_hint() -> None:
    upstream = (
        FakeUpstream()
        .add("GET", USERINFO, (200, {"email": "me@gmail.com"}))
        .add(
            "GET",
            f"{GMAIL}/messages",
            (
                403,
                {
                    "error": {
                        "code": 403,
                        "message": "Gmail API has not been used in project 42 before or it is disabled.",
                        "status": "PERMISSION_DENIED",
                    }
                },
            ),
        )
    )

    async with upstream.client() as http:
        with pytest.raises(UpstreamApiError) as exc_info:
            await fetch_inbox(GOOGLE, "T", http)

    err = exc_info.value
    assert err.status_code == 403
    assert err.hint is not None and "Gmail API" in err.hint
    assert "hint:" in str(err)


@pytest.mark.asyncio
async def test_gmail_insufficient_scope_gets_a_hint() -> None:
    upstream = FakeUpstream().add(
        "GET",
        USERINFO,
        (403, {"error": {"code": 403, "message": "Request had insufficient authentication scopes."}}),
    )

    async with upstream.client() as http:
        with pytest.raises(UpstreamApiError) as exc_info:
            await fetch_inbox(GOOGLE, "T", http)

    assert exc_info.value.hint is not None


@pytest.mark.asyncio
async def test_gmail_unrecognized_error_shows_status_and_first_line() -> None:
    upstream = FakeUpstream().add(
        "GET", USERINFO, httpx.Response(502, text="Bad gateway\n<html>upstream details</html>")
    )

    async with upstream.client() as http:
        with pytest.raises(UpstreamApiError) as exc_info:
            await fetch_inbox(GOOGLE, "T", http)

    err = exc_info.value
    assert err.hint is None
    assert "502: Bad gateway" in str(err)
    assert "upstream details" not in str(err)


@pytest.mark.asyncio
async def test_outlook_message_without_subject_gets_placeholder() -> None:
    upstream = (
        FakeUpstream()
        .add("GET", f"{GRAPH}/me", (200, {"mail": None, "userPrincipalName": "me@outlook.com"}))
        .add(
            "GET",
            f"{GRAPH}/me/messages",
            (
                200,
                {
                    "value": [
                        {
                            "from": {"emailAddress": {"name": "Bob", "address": "bob@x.test"}},
                            "receivedDateTime": "2025-10-03T19:19:31Z",
                            "bodyPreview": "See you soon",
                        },
                        {"subject": "", "bodyPreview": ""},
                    ]
                },
            ),
        )
    )

    async with upstream.client() as http:
        result = await fetch_inbox(OUTLOOK, "T", http)

    assert result.provider is Provider.OUTLOOK
    assert result.account == "me@outlook.com"
    first, second = result.messages
    assert first.subject == NO_SUBJECT
    assert first.from_ == "Bob <bob@x.test>"
    assert first.date == "Fri, 03 Oct 2025 19:19:31 +0000"
    assert first.body == "See you soon"
    assert second == MailMessage(subject=NO_SUBJECT, from_=UNKNOWN_SENDER, date=NO_DATE, body=NO_PREVIEW)


@pytest.mark.asyncio
async def test_outlook_requests_capped_ordered_selected_list() -> None:
    upstream = (
        FakeUpstream()
        .add("GET", f"{GRAPH}/me", (200, {"mail": "me@contoso.test"}))
        .add("GET", f"{GRAPH}/me/messages", (200, {"value": []}))
    )

    async with upstream.client() as http:
        result = await fetch_inbox(OUTLOOK, "T", http)

    assert result.account == "me@contoso.test"
    params = upstream.requests[1].url.params
    assert params["$top"] == "20"
    assert params["$orderby"] == "receivedDateTime desc"
    assert params["$select"] == "subject,from,receivedDateTime,bodyPreview"
    assert len(upstream.requests) == 2


@pytest.mark.asyncio
async def test_outlook_graph_error_is_upstream_error() -> None:
    upstream = FakeUpstream().add(
        "GET",
        f"{GRAPH}/me",
        (401, {"error": {"code": "InvalidAuthenticationToken", "message": "Access token is empty."}}),
    )

    async with upstream.client() as http:
        with pytest.raises(UpstreamApiError) as exc_info:
            await fetch_inbox(OUTLOOK, "T", http)

    assert exc_info.value.status_code == 401
    assert "InvalidAuthenticationToken" in str(exc_info.value)
    assert exc_info.value.hint is not None


@pytest.mark.asyncio
async def test_non_object_list_items_are_skipped() -> None:
    upstream = (
        FakeUpstream()
        .add("GET", USERINFO, (200, {"email": "me@gmail.com"}))
        .add("GET", f"{GMAIL}/messages", (200, {"messages": [None, "m0", {"id": "m1"}]}))
        .add("GET", f"{GMAIL}/messages/m1", (200, gmail_message("m1", {"Subject": "Only one"})))
        .add("GET", f"{GRAPH}/me", (200, {"mail": "me@contoso.test"}))
        .add("GET", f"{GRAPH}/me/messages", (200, {"value": [None, 7, {"subject": "Kept"}]}))
    )

    async with upstream.client() as http:
        google = await fetch_inbox(GOOGLE, "T", http)
        outlook = await fetch_inbox(OUTLOOK, "T", http)

    assert [m.subject for m in google.messages] == ["Only one"]
    assert [m.subject for m in outlook.messages] == ["Kept"]
