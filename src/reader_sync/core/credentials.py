"""Authorization token storage for a reader source."""

from typing import Optional


AUTH_HEADER_PREFIX = "GoogleLogin auth="


class CredentialStore:
    """Holds the authorization token of one account.

    Storing or clearing a token does not touch the login state; the
    authenticator decides when a source counts as logged in.
    """

    def __init__(self, token: Optional[str] = None):
        self._token = token or ""

    @property
    def token(self) -> str:
        return self._token

    @property
    def has_token(self) -> bool:
        return bool(self._token)

    def set_token(self, value: Optional[str]) -> None:
        self._token = (value or "").strip()

    def get_auth_header(self) -> str:
        """Return the Authorization header value, or an empty string."""
        if not self._token:
            return ""
        return f"{AUTH_HEADER_PREFIX}{self._token}"

    def clear(self) -> None:
        self._token = ""

    def __repr__(self) -> str:
        state = "set" if self._token else "empty"
        return f"CredentialStore(token={state})"
