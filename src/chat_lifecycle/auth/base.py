"""
Session provider abstractions.

Authentication itself lives outside this package: the lifecycle only consumes
an access token and, when that token has expired, asks the provider for a fresh
one. 'SessionProvider' is that boundary. 'StaticSessionProvider' wraps a fixed
session (CLI usage, tests) and optionally a refresh callback.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from loguru import logger
from pydantic import BaseModel

from chat_lifecycle.utils.time import get_current_epoch_seconds


class Session(BaseModel):
    """An authenticated session. 'expires_at' is in epoch seconds."""

    access_token: str
    user_id: str
    expires_at: int | None = None
    refresh_token: str | None = None

    def is_expired(self, now: int | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else get_current_epoch_seconds()) > self.expires_at


class SessionProvider(ABC):
    """Abstract source of the current session."""

    @abstractmethod
    async def get_session(self) -> Session | None:
        """Return the current session, or None when nobody is signed in."""
        pass

    @abstractmethod
    async def refresh_session(self) -> Session:
        """Exchange the refresh token for a new session. Raise on failure."""
        pass


class StaticSessionProvider(SessionProvider):
    def __init__(
        self,
        session: Session | None,
        refresher: Callable[[Session | None], Awaitable[Session]] | None = None,
    ) -> None:
        self._session = session
        self._refresher = refresher

    async def get_session(self) -> Session | None:
        return self._session

    async def refresh_session(self) -> Session:
        if self._refresher is None:
            raise RuntimeError("Session refresh is not supported by this provider")
        self._session = await self._refresher(self._session)
        return self._session


async def resolve_access_token(provider: SessionProvider, session: Session) -> str:
    """Return a usable access token for 'session', refreshing it when expired.

    Refresh is best-effort: if it fails the existing token is returned and the
    endpoint decides whether it is still acceptable.
    """
    if not session.is_expired():
        return session.access_token
    try:
        refreshed = await provider.refresh_session()
    except Exception as exc:
        logger.warning(f"Session refresh failed, proceeding with existing token: {exc}")
        return session.access_token
    logger.debug("Session refreshed before completion call")
    return refreshed.access_token
