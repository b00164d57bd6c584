from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from mail_engine.config import get_http_timeout


@asynccontextmanager
async def http_client(client: Optional[httpx.AsyncClient] = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` untouched, or a short-lived client that never follows redirects."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=get_http_timeout(), follow_redirects=False) as fresh:
        yield fresh


def first_line(text: Optional[str], limit: int = 300) -> str:
    lines = (text or "").strip().splitlines()
    return lines[0][:limit] if lines else ""
