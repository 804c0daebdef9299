"""Storage key names for persisted auth state.

Key functions are pure — they compute key names, never touch storage. The
names match what the web client kept in localStorage/sessionStorage, so a
store shared with it stays readable by both.

An optional prefix namespaces every key (several clients in one Redis).
"""


def _prefixed(prefix: str, name: str) -> str:
    return f"{prefix}:{name}" if prefix else name


def token_key(prefix: str = "") -> str:
    """Bearer credential (plain string)."""
    return _prefixed(prefix, "auth_token")


def profile_key(prefix: str = "") -> str:
    """Persisted UserProfile as JSON {id, email, name, role, roles}."""
    return _prefixed(prefix, "disasterconnect_auth")


def pending_google_user_key(prefix: str = "") -> str:
    """GoogleUserInfo awaiting role selection (JSON)."""
    return _prefixed(prefix, "googleUserInfo")
