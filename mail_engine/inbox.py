from __future__ import annotations

from typing import Awaitable, Callable, Dict, Optional

import httpx

from mail_engine.gmail import fetch_google_inbox
from mail_engine.models import LoginResult, Provider
from mail_engine.outlook_graph import fetch_outlook_inbox
from mail_engine.providers import ProviderConfig

InboxFetcher = Callable[[ProviderConfig, str, Optional[httpx.AsyncClient]], Awaitable[LoginResult]]

ADAPTERS: Dict[Provider, InboxFetcher] = {
    Provider.GOOGLE: fetch_google_inbox,
    Provider.OUTLOOK: fetch_outlook_inbox,
}


async def fetch_inbox(
    config: ProviderConfig,
    access_token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> LoginResult:
    """Fetch and normalize the newest inbox messages for ``config.provider``."""
    return await ADAPTERS[config.provider](config, access_token, client)
