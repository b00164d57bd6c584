"""Error taxonomy for the sign-in and inbox flow.

Every failure the engine raises derives from ``MailEngineError``. A remediation
hint may be attached after the fact; it is rendered into ``str(exc)`` so the
caller never has to branch on the error kind to show something useful.
"""
from __future__ import annotations

from typing import Optional


class MailEngineError(Exception):
    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


class ValidationError(MailEngineError):
    """Bad or missing client id, rejected before any I/O."""


class ConfigurationError(MailEngineError):
    """Redirect URI that cannot be served by the loopback listener."""


class StoreError(MailEngineError):
    """The credential store file could not be opened, read or written."""


class MissingCredentials(MailEngineError):
    def __init__(self, provider_label: str):
        super().__init__(f"No OAuth client credentials configured for {provider_label}")
        self.provider_label = provider_label


class CallbackError(MailEngineError):
    """Base class for failures while capturing the OAuth redirect."""


class CallbackBindError(CallbackError):
    pass


class CallbackTimeoutError(CallbackError):
    pass


class CallbackParseError(CallbackError):
    pass


class CallbackPathMismatch(CallbackError):
    pass


class CsrfMismatch(CallbackError):
    pass


class MissingAuthorizationCode(CallbackError):
    pass


class AuthorizationDenied(CallbackError):
    def __init__(self, error: str, description: Optional[str] = None):
        message = f"Authorization was denied by the provider: {error}"
        if description:
            message = f"{message} ({description})"
        super().__init__(message)
        self.error = error
        self.description = description


class TokenExchangeError(MailEngineError):
    pass


class UpstreamApiError(MailEngineError):
    def __init__(self, message: str, status_code: Optional[int] = None, hint: Optional[str] = None):
        super().__init__(message, hint=hint)
        self.status_code = status_code


def describe_error(exc: BaseException) -> str:
    """Render an exception and its ``__cause__`` chain as one sentence."""
    parts = []
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        text = str(current).strip() or type(current).__name__
        if not isinstance(current, MailEngineError):
            text = f"{type(current).__name__}: {text}"
        if text not in parts:
            parts.append(text)
        current = current.__cause__
    return ": ".join(parts)
