import time
import logging
from typing import Callable, Optional

from jose import jwt
from jose.exceptions import JOSEError

from .errors import ConfigurationError, CredentialError
from .token_store import AuthToken, TokenStore

logger = logging.getLogger(__name__)

# Kling rejects tokens whose nbf is in the future; allow for clock skew
NOT_BEFORE_SKEW = 5


def sign_kling_jwt(access_key: str, secret_key: str, now: float, ttl: int = 1800) -> AuthToken:
    """Sign a Kling API token: HS256 over `{iss, exp, nbf}`.

    Raises CredentialError if the signing library rejects the key or claims.
    """
    issued = int(now)
    expires_at = issued + int(ttl)
    claims = {
        "iss": access_key,
        "exp": expires_at,
        "nbf": issued - NOT_BEFORE_SKEW,
    }
    try:
        value = jwt.encode(claims, secret_key, algorithm="HS256", headers={"typ": "JWT"})
    except (JOSEError, TypeError, ValueError) as exc:
        raise CredentialError("Failed to sign provider access token", details=str(exc))
    if not isinstance(value, str) or not value:
        raise CredentialError("Failed to sign provider access token", details="signer returned no token")
    return AuthToken(value, expires_at)


class KlingTokenManager:
    """Hands out a valid Kling JWT, re-signing only when the cached one is
    within `buffer` seconds of expiry.

    The cached token lives in a `TokenStore` owned by the caller.
    """

    def __init__(
        self,
        access_key: Optional[str],
        secret_key: Optional[str],
        store: Optional[TokenStore] = None,
        ttl: int = 1800,
        buffer: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.access_key = access_key
        self.secret_key = secret_key
        self.store = store if store is not None else TokenStore()
        if ttl <= 0:
            raise ConfigurationError("KLING_TOKEN_TTL must be positive", details=f"got {ttl}")
        self.ttl = ttl
        # buffer must stay below ttl
        self.buffer = min(buffer, max(ttl - 1, 0))
        self.clock = clock

    def _require_secrets(self):
        if not self.access_key or not self.secret_key:
            raise ConfigurationError(
                "Kling API credentials not configured",
                details="KLING_ACCESS_KEY and KLING_SECRET_KEY must both be set",
            )

    def _issue(self, reason: str) -> str:
        token = sign_kling_jwt(self.access_key, self.secret_key, self.clock(), ttl=self.ttl)
        self.store.set(token)
        logger.info(f"Issued Kling token ({reason}): {token.value[:20]}... expires_at={token.expires_at}")
        return token.value

    def get_valid_token(self) -> str:
        self._require_secrets()
        current = self.store.get()
        if current is not None and not current.is_expiring(self.clock(), self.buffer):
            return current.value
        return self._issue("expired" if current is not None else "first use")

    def refresh_token(self) -> str:
        """Sign a new token regardless of the cached one.

        Claims carry whole seconds only, so a refresh within the same clock
        second as the previous signing yields the identical token string.
        """
        self._require_secrets()
        return self._issue("forced refresh")
