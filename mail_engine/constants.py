"""Application constants."""

# Inbox
MAX_INBOX_MESSAGES = 20

# Placeholders for fields a provider leaves out
NO_SUBJECT = "(no subject)"
UNKNOWN_SENDER = "(unknown sender)"
NO_DATE = "(no date)"
NO_PREVIEW = "(no preview)"
UNKNOWN_ACCOUNT = "(unknown account)"

# OAuth
DEFAULT_REDIRECT_URI = "http://127.0.0.1:8765/oauth/callback"
LOOPBACK_HOSTS = ("127.0.0.1", "localhost")
GOOGLE_CLIENT_ID_SUFFIX = ".apps.googleusercontent.com"
CSRF_TOKEN_BYTES = 24
PKCE_VERIFIER_BYTES = 64  # 86 chars once encoded, within the 43-128 limit

# Timeouts (seconds)
DEFAULT_CALLBACK_TIMEOUT_SECONDS = 180.0
DEFAULT_CALLBACK_READ_TIMEOUT_SECONDS = 20.0
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

# Storage
DEFAULT_DB_PATH = "data/mail-engine.sqlite3"

# Local API
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8000

# Callback responses
CALLBACK_SUCCESS_MESSAGE = "Sign-in complete. You can close this tab and return to the app."
CALLBACK_MAX_HEADER_LINES = 100

# Error messages
ERROR_TOKEN_EXCHANGE = "Token exchange failed"
ERROR_UPSTREAM = "Mail API request failed"
