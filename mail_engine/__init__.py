"""OAuth sign-in and inbox summary engine for Google and Outlook mail."""

from mail_engine.models import LoginResult, MailMessage, Provider, ProviderCredentials, SavedOAuthSettings
from mail_engine.session import (
    SessionOrchestrator,
    load_oauth_settings,
    login_and_fetch,
    save_provider_credentials,
    try_restore_session,
)

__all__ = [
    "LoginResult",
    "MailMessage",
    "Provider",
    "ProviderCredentials",
    "SavedOAuthSettings",
    "SessionOrchestrator",
    "load_oauth_settings",
    "login_and_fetch",
    "save_provider_credentials",
    "try_restore_session",
]
