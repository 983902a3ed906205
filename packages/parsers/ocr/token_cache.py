"""
Access token cache for the cloud OCR provider

Baidu issues client-credentials tokens valid for ~30 days. Fetching one costs
a round trip, so the token is cached for the life of the cache instance and
refreshed 5 minutes before the provider's stated expiry.

Concurrent callers racing on an expired token may each fetch a new one; the
last writer wins. No lock is held across the network call.
"""
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from packages.parsers.errors import AuthError

logger = structlog.get_logger()

# Refresh this many seconds before the provider says the token expires
EXPIRY_MARGIN_SECONDS = 300


@dataclass(frozen=True)
class BaiduCredentials:
    """API key pair for the client-credentials grant"""
    api_key: str
    secret_key: str


@dataclass(frozen=True)
class TokenGrant:
    """Raw token response: token value and lifetime in seconds"""
    token: str
    expires_in: int


@dataclass(frozen=True)
class AccessToken:
    """Cached token with absolute expiry on the cache's clock"""
    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


TokenFetcher = Callable[[BaiduCredentials], Awaitable[TokenGrant]]


class TokenCache:
    """
    Caches one bearer token and refreshes it on expiry.

    Args:
        fetcher: Coroutine function performing the token request
        clock: Monotonic clock in seconds (injectable for tests)
        margin_seconds: Safety margin subtracted from the stated lifetime
    """

    def __init__(
        self,
        fetcher: TokenFetcher,
        clock: Callable[[], float] = time.monotonic,
        margin_seconds: int = EXPIRY_MARGIN_SECONDS,
    ):
        self._fetcher = fetcher
        self._clock = clock
        self._margin = margin_seconds
        self._token: Optional[AccessToken] = None

    @property
    def cached(self) -> Optional[AccessToken]:
        return self._token

    async def get_token(self, credentials: BaiduCredentials) -> str:
        """
        Return a valid token, fetching a new one if the cache is empty or expired.

        Raises:
            AuthError: If the provider does not return a usable token
        """
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token.value

        logger.info("ocr_token_refresh", had_token=token is not None)
        grant = await self._fetcher(credentials)

        if not grant.token:
            raise AuthError("Token endpoint returned no access_token")

        fetched_at = self._clock()
        self._token = AccessToken(
            value=grant.token,
            expires_at=fetched_at + (grant.expires_in - self._margin),
        )

        logger.info("ocr_token_cached", expires_in=grant.expires_in)
        return self._token.value

    def invalidate(self) -> None:
        """Drop the cached token (teardown, or after the provider rejected it)"""
        self._token = None
