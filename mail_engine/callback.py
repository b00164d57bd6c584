"""One-shot loopback listener that captures the OAuth redirect.

Usage::

    async with CallbackListener(target, state) as listener:
        open_browser(auth_url)
        code = await listener.wait_for_code()

The socket is bound on entry and released on exit whatever happened in
between. Only the first connection is served; any later one is closed
without a response.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
from http import HTTPStatus
from typing import Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

from mail_engine.config import get_callback_read_timeout, get_callback_timeout
from mail_engine.constants import CALLBACK_MAX_HEADER_LINES, CALLBACK_SUCCESS_MESSAGE
from mail_engine.errors import (
    AuthorizationDenied,
    CallbackBindError,
    CallbackError,
    CallbackParseError,
    CallbackPathMismatch,
    CallbackTimeoutError,
    CsrfMismatch,
    MissingAuthorizationCode,
)
from mail_engine.models import RedirectTarget

logger = logging.getLogger(__name__)


def _first(params: Dict[str, List[str]], name: str) -> Optional[str]:
    values = params.get(name)
    return values[0] if values else None


def _status_for(error: CallbackError) -> int:
    if isinstance(error, CallbackPathMismatch):
        return 404
    return 400


class CallbackListener:
    def __init__(
        self,
        target: RedirectTarget,
        expected_state: str,
        accept_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
    ):
        self.target = target
        self.expected_state = expected_state
        self.accept_timeout = accept_timeout if accept_timeout is not None else get_callback_timeout()
        self.read_timeout = read_timeout if read_timeout is not None else get_callback_read_timeout()
        self._server: Optional[asyncio.AbstractServer] = None
        self._connected: Optional[asyncio.Future] = None
        self._outcome: Optional[asyncio.Future] = None

    async def __aenter__(self) -> "CallbackListener":
        loop = asyncio.get_running_loop()
        self._connected = loop.create_future()
        self._outcome = loop.create_future()
        try:
            self._server = await asyncio.start_server(
                self._handle, self.target.host, self.target.port
            )
        except OSError as e:
            raise CallbackBindError(
                f"Could not listen on {self.target.host}:{self.target.port} for the OAuth redirect; "
                "another program may be using this port"
            ) from e
        logger.info("Listening for OAuth redirect on %s:%s%s", self.target.host, self.port, self.target.path)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def port(self) -> int:
        if self._server is None or not self._server.sockets:
            return self.target.port
        return self._server.sockets[0].getsockname()[1]

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def close(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        await server.wait_closed()
        if self._outcome is not None and self._outcome.done() and not self._outcome.cancelled():
            # Mark the outcome as observed so an unread failure is not reported at GC time
            self._outcome.exception()
        logger.info("OAuth redirect listener closed")

    async def wait_for_code(self) -> str:
        """Block until the redirect arrives and return the authorization code."""
        if self._connected is None or self._outcome is None:
            raise RuntimeError("CallbackListener must be entered before waiting")
        try:
            await asyncio.wait_for(asyncio.shield(self._connected), self.accept_timeout)
        except asyncio.TimeoutError as e:
            raise CallbackTimeoutError(
                f"No OAuth redirect arrived within {self.accept_timeout:g} seconds"
            ) from e
        return await self._outcome

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        if self._connected.done():
            writer.close()
            return
        self._connected.set_result(None)
        try:
            try:
                code = await self._read_and_match(reader)
            except CallbackError as e:
                await self._respond(writer, _status_for(e), e.message)
                self._outcome.set_exception(e)
            except Exception as e:
                failure = CallbackParseError(f"Could not read the OAuth redirect: {e}")
                failure.__cause__ = e
                self._outcome.set_exception(failure)
            else:
                await self._respond(writer, 200, CALLBACK_SUCCESS_MESSAGE)
                self._outcome.set_result(code)
        finally:
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()

    async def _readline(self, reader: asyncio.StreamReader) -> bytes:
        try:
            return await asyncio.wait_for(reader.readline(), self.read_timeout)
        except asyncio.TimeoutError as e:
            raise CallbackTimeoutError(
                f"The browser connected but sent nothing within {self.read_timeout:g} seconds"
            ) from e
        except ValueError as e:
            raise CallbackParseError("The OAuth redirect request line is too long") from e

    async def _read_and_match(self, reader: asyncio.StreamReader) -> str:
        request_line = await self._readline(reader)
        if not request_line.strip():
            raise CallbackParseError("The browser connected but sent an empty request")
        parts = request_line.decode("latin-1").strip().split(" ")
        if len(parts) != 3 or not parts[2].startswith("HTTP/"):
            raise CallbackParseError(f"Malformed HTTP request line: {request_line[:120]!r}")

        # Headers carry nothing we need; drain them so the browser sees a clean reply
        for _ in range(CALLBACK_MAX_HEADER_LINES):
            line = await self._readline(reader)
            if line in (b"\r\n", b"\n", b""):
                break

        url = urlsplit(parts[1])
        if url.path != self.target.path:
            raise CallbackPathMismatch(
                f"Unexpected callback path {url.path!r}, expected {self.target.path!r}"
            )

        params = parse_qs(url.query, keep_blank_values=True)
        error = _first(params, "error")
        if error is not None:
            raise AuthorizationDenied(error, _first(params, "error_description"))

        state = _first(params, "state")
        if state is None or not secrets.compare_digest(
            state.encode("utf-8"), self.expected_state.encode("utf-8")
        ):
            raise CsrfMismatch(
                "The OAuth state parameter does not match this sign-in attempt; "
                "the callback may be stale or spoofed"
            )

        code = _first(params, "code")
        if not code:
            raise MissingAuthorizationCode("The OAuth redirect did not include an authorization code")
        return code

    async def _respond(self, writer: asyncio.StreamWriter, status: int, message: str) -> None:
        body = f"{message}\n".encode("utf-8")
        head = (
            f"HTTP/1.1 {status} {HTTPStatus(status).phrase}\r\n"
            "Content-Type: text/plain; charset=utf-8\r\n"
            f"Content-Length: {len(body)}\r\n"
            "Connection: close\r\n"
            "\r\n"
        ).encode("ascii")
        with contextlib.suppress(ConnectionError):
            writer.write(head + body)
            await writer.drain()
