"""Static per-provider OAuth configuration.

Everything provider-specific that is not response parsing lives in
``CATALOG``: endpoints, scopes, client id validation and the remediation
hints attached to token endpoint failures.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from mail_engine.constants import GOOGLE_CLIENT_ID_SUFFIX
from mail_engine.errors import ValidationError
from mail_engine.models import Provider, ProviderCredentials


@dataclass(frozen=True)
class CatalogEntry:
    label: str
    auth_url: str
    token_url: str
    scopes: Tuple[str, ...]
    client_id_suffix: Optional[str] = None
    missing_secret_hint: str = ""
    invalid_client_hint: str = ""


CATALOG: Dict[Provider, CatalogEntry] = {
    Provider.GOOGLE: CatalogEntry(
        label="Google",
        auth_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scopes=(
            "openid",
            "email",
            "https://www.googleapis.com/auth/gmail.readonly",
        ),
        client_id_suffix=GOOGLE_CLIENT_ID_SUFFIX,
        missing_secret_hint=(
            "Google requires the client secret of the OAuth client; "
            "copy it from Google Cloud Console and save it in the Google settings"
        ),
        invalid_client_hint=(
            "check that the Client ID and secret belong to a 'Desktop app' OAuth client "
            "in Google Cloud Console"
        ),
    ),
    Provider.OUTLOOK: CatalogEntry(
        label="Outlook",
        auth_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
        token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
        scopes=(
            "openid",
            "email",
            "offline_access",
            "https://graph.microsoft.com/User.Read",
            "https://graph.microsoft.com/Mail.Read",
        ),
        missing_secret_hint=(
            "enable 'Allow public client flows' for the app registration in Azure, "
            "or save a client secret in the Outlook settings"
        ),
        invalid_client_hint=(
            "check the Application (client) ID and that the app registration supports "
            "personal Microsoft accounts with a 'Mobile and desktop applications' redirect URI"
        ),
    ),
}


@dataclass(frozen=True)
class ProviderConfig:
    provider: Provider
    client_id: str
    client_secret: Optional[str]
    auth_url: str
    token_url: str
    scopes: Tuple[str, ...]
    redirect_uri: str

    @property
    def label(self) -> str:
        return CATALOG[self.provider].label

    def __repr__(self) -> str:
        return f"ProviderConfig(provider={self.provider.value!r}, client_id={self.client_id!r})"


def get_entry(provider: Provider) -> CatalogEntry:
    return CATALOG[provider]


def validate_client_id(provider: Provider, client_id: str) -> None:
    entry = CATALOG[provider]
    client_id = (client_id or "").strip()
    if not client_id:
        raise ValidationError(f"{entry.label} Client ID is required")
    if entry.client_id_suffix and not client_id.endswith(entry.client_id_suffix):
        raise ValidationError(
            f"{entry.label} Client ID must end with {entry.client_id_suffix}"
        )


def build_provider_config(
    provider: Provider, credentials: ProviderCredentials, redirect_uri: str
) -> ProviderConfig:
    validate_client_id(provider, credentials.client_id)
    entry = CATALOG[provider]
    return ProviderConfig(
        provider=provider,
        client_id=credentials.client_id.strip(),
        client_secret=(credentials.client_secret or "").strip() or None,
        auth_url=entry.auth_url,
        token_url=entry.token_url,
        scopes=entry.scopes,
        redirect_uri=redirect_uri,
    )


def token_error_hint(provider: Provider, error_text: str) -> Optional[str]:
    """Return advice for token endpoint failures that have a known fix."""
    entry = CATALOG[provider]
    lowered = (error_text or "").lower()
    if "client_secret is missing" in lowered or (
        "client_secret" in lowered and "missing" in lowered
    ) or "aadsts7000218" in lowered:
        return entry.missing_secret_hint
    if "invalid_client" in lowered or "unauthorized_client" in lowered:
        return entry.invalid_client_hint
    return None
