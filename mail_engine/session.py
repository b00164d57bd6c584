"""Sign-in orchestration: stored refresh token first, browser flow as fallback.

A flow moves through ``FlowState`` values::

    IDLE -> CREDENTIALS_RESOLVED -> REFRESH_ATTEMPTED ------------> TOKENS_OBTAINED -> INBOX_FETCHED
                                 \\-> INTERACTIVE_AUTHORIZING --/

and lands in ``FAILED`` when anything raises. A rejected refresh token is
discarded and the flow continues down the interactive branch; that is the
only automatic recovery.
"""
from __future__ import annotations

import logging
import webbrowser
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

from mail_engine.callback import CallbackListener
from mail_engine.config import get_google_client_id, get_google_client_secret, get_oauth_redirect_uri
from mail_engine.credentials import CredentialStore
from mail_engine.errors import MissingCredentials, TokenExchangeError
from mail_engine.inbox import fetch_inbox
from mail_engine.models import (
    LoginResult,
    Provider,
    ProviderCredentials,
    SavedOAuthSettings,
    TokenSet,
)
from mail_engine.oauth import (
    build_authorization_url,
    exchange_code,
    exchange_refresh,
    generate_csrf_token,
    generate_pkce_pair,
)
from mail_engine.providers import (
    ProviderConfig,
    build_provider_config,
    get_entry,
    token_error_hint,
    validate_client_id,
)
from mail_engine.redirect import resolve_redirect_target

logger = logging.getLogger(__name__)

BrowserOpener = Callable[[str], object]
InboxFetcher = Callable[[ProviderConfig, str, Optional[httpx.AsyncClient]], Awaitable[LoginResult]]


class FlowState(str, Enum):
    IDLE = "idle"
    CREDENTIALS_RESOLVED = "credentials_resolved"
    REFRESH_ATTEMPTED = "refresh_attempted"
    INTERACTIVE_AUTHORIZING = "interactive_authorizing"
    TOKENS_OBTAINED = "tokens_obtained"
    INBOX_FETCHED = "inbox_fetched"
    FAILED = "failed"


class _Flow:
    def __init__(self, provider: Provider, operation: str):
        self.provider = provider
        self.operation = operation
        self.state = FlowState.IDLE

    def advance(self, state: FlowState) -> None:
        logger.debug("%s/%s: %s -> %s", self.operation, self.provider.value, self.state.value, state.value)
        self.state = state


def open_in_browser(url: str) -> None:
    """Hand the URL to the system browser; success is not confirmed."""
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        logger.warning("Could not open a browser automatically: %s", e)
        return
    if not opened:
        logger.warning("No browser accepted the sign-in URL; open it manually")


class SessionOrchestrator:
    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        redirect_uri: Optional[str] = None,
        open_browser: BrowserOpener = open_in_browser,
        http: Optional[httpx.AsyncClient] = None,
        inbox_fetcher: InboxFetcher = fetch_inbox,
        callback_timeout: Optional[float] = None,
        callback_read_timeout: Optional[float] = None,
    ):
        self.store = store or CredentialStore()
        self.redirect_uri = redirect_uri
        self.open_browser = open_browser
        self.http = http
        self.inbox_fetcher = inbox_fetcher
        self.callback_timeout = callback_timeout
        self.callback_read_timeout = callback_read_timeout

    # ----- settings -----

    def load_oauth_settings(self) -> SavedOAuthSettings:
        return self.store.load_settings()

    def save_provider_credentials(
        self, provider: Provider, credentials: ProviderCredentials
    ) -> SavedOAuthSettings:
        validate_client_id(provider, credentials.client_id)
        self.store.save_credentials(provider, credentials)
        return self.store.load_settings()

    # ----- flows -----

    async def login_and_fetch(self, provider: Provider) -> LoginResult:
        flow = _Flow(provider, "login")
        try:
            config = self._resolve_config(provider, flow)
            stored_refresh = self.store.load_refresh_token(provider)

            tokens: Optional[TokenSet] = None
            if stored_refresh:
                flow.advance(FlowState.REFRESH_ATTEMPTED)
                tokens = await self._refresh_or_discard(config, stored_refresh)

            if tokens is None:
                flow.advance(FlowState.INTERACTIVE_AUTHORIZING)
                tokens = await self._authorize_interactively(
                    config, first_grant=stored_refresh is None
                )

            flow.advance(FlowState.TOKENS_OBTAINED)
            result = await self.inbox_fetcher(config, tokens.access_token, self.http)
            flow.advance(FlowState.INBOX_FETCHED)
            return result
        except Exception:
            flow.advance(FlowState.FAILED)
            raise

    async def try_restore_session(self, provider: Provider) -> Optional[LoginResult]:
        """Sign in silently with the stored refresh token, or return None."""
        flow = _Flow(provider, "restore")
        try:
            stored_refresh = self.store.load_refresh_token(provider)
            if not stored_refresh:
                logger.info("No stored %s session to restore", provider.value)
                return None

            config = self._resolve_config(provider, flow)
            flow.advance(FlowState.REFRESH_ATTEMPTED)
            tokens = await self._refresh_or_discard(config, stored_refresh)
            if tokens is None:
                return None

            flow.advance(FlowState.TOKENS_OBTAINED)
            result = await self.inbox_fetcher(config, tokens.access_token, self.http)
            flow.advance(FlowState.INBOX_FETCHED)
            return result
        except Exception:
            flow.advance(FlowState.FAILED)
            raise

    # ----- steps -----

    def _resolve_credentials(self, provider: Provider) -> ProviderCredentials:
        stored = self.store.load_credentials(provider)
        client_id = stored.client_id if stored else ""
        client_secret = stored.client_secret if stored else None
        if provider is Provider.GOOGLE and not client_id:
            # The environment secret only belongs to the environment client id
            client_id = get_google_client_id()
            client_secret = get_google_client_secret() or None
        if not client_id:
            raise MissingCredentials(get_entry(provider).label)
        return ProviderCredentials(client_id=client_id, client_secret=client_secret)

    def _resolve_config(self, provider: Provider, flow: _Flow) -> ProviderConfig:
        credentials = self._resolve_credentials(provider)
        redirect_uri = self.redirect_uri or get_oauth_redirect_uri()
        config = build_provider_config(provider, credentials, redirect_uri)
        flow.advance(FlowState.CREDENTIALS_RESOLVED)
        return config

    async def _refresh_or_discard(self, config: ProviderConfig, refresh_token: str) -> Optional[TokenSet]:
        try:
            tokens = await exchange_refresh(config, refresh_token, self.http)
        except TokenExchangeError as e:
            # Treated as revoked; the caller decides whether to go interactive
            logger.warning("%s refresh token rejected, discarding it: %s", config.label, e)
            self.store.clear_refresh_token(config.provider)
            return None
        self._persist_refresh_token(config.provider, tokens)
        return tokens

    async def _authorize_interactively(self, config: ProviderConfig, first_grant: bool) -> TokenSet:
        target = resolve_redirect_target(config.redirect_uri)
        verifier, challenge = generate_pkce_pair()
        state = generate_csrf_token()
        auth_url = build_authorization_url(config, challenge, state, force_consent=first_grant)

        async with CallbackListener(
            target,
            state,
            accept_timeout=self.callback_timeout,
            read_timeout=self.callback_read_timeout,
        ) as listener:
            logger.info("Opening browser for %s sign-in", config.label)
            self.open_browser(auth_url)
            code = await listener.wait_for_code()

        try:
            tokens = await exchange_code(config, code, verifier, self.http)
        except TokenExchangeError as e:
            e.hint = e.hint or token_error_hint(config.provider, str(e))
            raise
        self._persist_refresh_token(config.provider, tokens)
        return tokens

    def _persist_refresh_token(self, provider: Provider, tokens: TokenSet) -> None:
        # An exchange without a new refresh token leaves the stored one valid
        if tokens.refresh_token:
            self.store.save_refresh_token(provider, tokens.refresh_token)


def load_oauth_settings() -> SavedOAuthSettings:
    return SessionOrchestrator().load_oauth_settings()


def save_provider_credentials(provider: Provider, credentials: ProviderCredentials) -> SavedOAuthSettings:
    return SessionOrchestrator().save_provider_credentials(provider, credentials)


async def login_and_fetch(provider: Provider) -> LoginResult:
    return await SessionOrchestrator().login_and_fetch(provider)


async def try_restore_session(provider: Provider) -> Optional[LoginResult]:
    return await SessionOrchestrator().try_restore_session(provider)
