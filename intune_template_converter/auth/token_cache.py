"""
Access token cache — owns the current bearer token for one Graph client.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

from ..config import TOKEN_REFRESH_MARGIN_SECONDS

logger = logging.getLogger("intune_template_converter.auth.cache")


class TokenSource(Protocol):
    async def acquire_token(self) -> str: ...

    @property
    def token_expiry(self) -> Optional[float]: ...


class AccessTokenCache:
    """
    Holds a bearer token and refreshes it shortly before it expires.

    Two callers refreshing at the same moment both hit the identity
    platform; the second token simply replaces the first.
    """

    def __init__(
        self,
        source: TokenSource,
        refresh_margin: float = TOKEN_REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self.refresh_count = 0

    def is_fresh(self) -> bool:
        return bool(self._token) and self._clock() < self._expires_at - self.refresh_margin

    async def get_or_refresh(self) -> str:
        """Return the cached token, acquiring a new one if missing or near expiry."""
        if self.is_fresh():
            return self._token  # type: ignore[return-value]

        logger.debug("Access token missing or near expiry, refreshing.")
        token = await self.source.acquire_token()
        expiry = self.source.token_expiry
        self._token = token
        self._expires_at = expiry if expiry is not None else self._clock() + 3600
        self.refresh_count += 1
        return token

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-acquires it."""
        self._token = None
        self._expires_at = 0.0


class StaticTokenSource:
    """Token source for a pre-acquired token (e.g. passed on the command line)."""

    def __init__(self, token: str, lifetime: float = 3600.0):
        self._token = token
        self._expiry = time.time() + lifetime

    async def acquire_token(self) -> str:
        return self._token

    @property
    def token_expiry(self) -> Optional[float]:
        return self._expiry
