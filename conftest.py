"""Shared fixtures and helpers for pytest."""
from __future__ import annotations

import asyncio
import socket
from typing import Any, Callable, Dict, List, Tuple, Union
from urllib.parse import parse_qsl

import httpx
import pytest

from mail_engine.credentials import CredentialStore

GOOGLE_CLIENT_ID = "1234-abcd.apps.googleusercontent.com"
OUTLOOK_CLIENT_ID = "9e5f94bc-e8a4-4e73-b8be-63364c29d753"

Reply = Union[Tuple[int, Any], httpx.Response, Callable[[httpx.Request], httpx.Response]]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "MAIL_OAUTH_REDIRECT_URI",
        "MAIL_ENGINE_DB_PATH",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path / "nested" / "dir" / "mail.sqlite3")


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def send_callback(port: int, path_and_query: str) -> bytes:
    """Play the browser: issue one GET to the loopback listener and read the reply."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(
        f"GET {path_and_query} HTTP/1.1\r\nHost: 127.0.0.1:{port}\r\nAccept: */*\r\n\r\n".encode()
    )
    await writer.drain()
    data = await reader.read()
    writer.close()
    await writer.wait_closed()
    return data


class FakeUpstream:
    """Routes httpx requests by method + URL (without query) to canned replies.

    A route given several replies hands them out in order and then keeps
    repeating the last one.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, *replies: Reply) -> "FakeUpstream":
        self.routes[(method, url)] = list(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"error": {"message": f"no route for {key}"}})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, httpx.Response):
            return reply
        if callable(reply):
            return reply(request)
        status, body = reply
        return httpx.Response(status, json=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), follow_redirects=False)

    def forms(self, url: str) -> List[Dict[str, str]]:
        return [
            dict(parse_qsl(r.content.decode()))
            for r in self.requests
            if r.method == "POST" and str(r.url) == url
        ]
