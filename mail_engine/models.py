from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Provider(str, Enum):
    GOOGLE = "google"
    OUTLOOK = "outlook"

    @property
    def key(self) -> str:
        """Stable key used for storage rows."""
        return self.value


class ProviderCredentials(BaseModel):
    client_id: str
    client_secret: Optional[str] = None

    @field_validator("client_id", mode="before")
    @classmethod
    def _trim_client_id(cls, value: Optional[str]) -> str:
        return (value or "").strip()

    @field_validator("client_secret", mode="before")
    @classmethod
    def _blank_secret_is_absent(cls, value: Optional[str]) -> Optional[str]:
        return (value or "").strip() or None


class SavedOAuthSettings(BaseModel):
    google: Optional[ProviderCredentials] = None
    outlook: Optional[ProviderCredentials] = None


class MailMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject: str
    from_: str = Field(alias="from")
    date: str
    body: str


class LoginResult(BaseModel):
    provider: Provider
    account: str
    messages: List[MailMessage]


class RestoreResult(BaseModel):
    session: Optional[LoginResult] = None


@dataclass(frozen=True)
class RedirectTarget:
    host: str
    port: int
    path: str


@dataclass(frozen=True)
class TokenSet:
    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
