"""Persistence for OAuth client credentials and refresh tokens.

Rows live in a small SQLite file. Every call opens a connection, makes sure
the schema exists, does its work and closes again, so tests can point a store
at a throwaway path.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from mail_engine.config import get_db_path
from mail_engine.errors import StoreError, ValidationError
from mail_engine.models import Provider, ProviderCredentials, SavedOAuthSettings

logger = logging.getLogger(__name__)


def _normalize(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS oauth_settings (
            provider TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            client_secret TEXT
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS oauth_tokens (
            provider TEXT PRIMARY KEY,
            refresh_token TEXT NOT NULL
        )
        """
    )


class CredentialStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else get_db_path()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path))
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Could not use the credential store at {self.path}") from e
        try:
            _ensure_schema(conn)
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Could not use the credential store at {self.path}") from e
        finally:
            conn.close()

    def load_settings(self) -> SavedOAuthSettings:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT provider, client_id, client_secret FROM oauth_settings"
            ).fetchall()

        settings = SavedOAuthSettings()
        for provider_key, client_id, client_secret in rows:
            try:
                provider = Provider(provider_key)
            except ValueError:
                logger.warning("Ignoring stored settings for unknown provider %r", provider_key)
                continue
            creds = ProviderCredentials(client_id=client_id, client_secret=client_secret)
            setattr(settings, provider.key, creds)
        return settings

    def load_credentials(self, provider: Provider) -> Optional[ProviderCredentials]:
        return getattr(self.load_settings(), provider.key)

    def save_credentials(self, provider: Provider, credentials: ProviderCredentials) -> None:
        client_id = (credentials.client_id or "").strip()
        if not client_id:
            raise ValidationError("Client ID is required")
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_settings (provider, client_id, client_secret)
                VALUES (?, ?, ?)
                ON CONFLICT(provider) DO UPDATE SET
                    client_id = excluded.client_id,
                    client_secret = excluded.client_secret
                """,
                (provider.key, client_id, _normalize(credentials.client_secret)),
            )
        logger.info("Saved OAuth client settings for %s", provider.key)

    def load_refresh_token(self, provider: Provider) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT refresh_token FROM oauth_tokens WHERE provider = ?",
                (provider.key,),
            ).fetchone()
        return _normalize(row[0]) if row else None

    def save_refresh_token(self, provider: Provider, token: Optional[str]) -> None:
        token = _normalize(token)
        if token is None:
            # A blank token is the same as no token
            self.clear_refresh_token(provider)
            return
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_tokens (provider, refresh_token)
                VALUES (?, ?)
                ON CONFLICT(provider) DO UPDATE SET refresh_token = excluded.refresh_token
                """,
                (provider.key, token),
            )

    def clear_refresh_token(self, provider: Provider) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM oauth_tokens WHERE provider = ?", (provider.key,))
