from typing import Optional


class AuthToken:
    """A signed credential and the epoch second it stops being valid."""

    def __init__(self, value: str, expires_at: float):
        self.value = value
        self.expires_at = expires_at

    def is_expiring(self, now: float, buffer: float = 0) -> bool:
        return now >= self.expires_at - buffer

    def __repr__(self):
        return f"AuthToken(value={self.value[:12]}..., expires_at={self.expires_at})"


class TokenStore:
    """Single-slot holder for the live provider token.

    One store is created per application context and handed to the token
    manager, so tests get a fresh cell instead of sharing module state.
    Writes are last-write-wins.
    """

    def __init__(self, token: Optional[AuthToken] = None):
        self._token = token

    def get(self) -> Optional[AuthToken]:
        return self._token

    def set(self, token: AuthToken):
        self._token = token

    def clear(self):
        self._token = None
