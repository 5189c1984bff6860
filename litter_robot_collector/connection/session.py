"""
Litter Robot API session management.

The session manager owns the single authenticated session and refreshes
it shortly before it expires, so fetches never present a stale token.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from ..exceptions import AuthError, AuthRefreshError, CollectorError

logger = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=1)


@dataclass(frozen=True)
class TokenGrant:
    """Tokens returned by a login or refresh call."""
    access_token: str
    refresh_token: str
    expiry: datetime
    user_id: Optional[str] = None


@dataclass
class Session:
    """
    Authenticated API session.

    ``expiry`` is already moved forward by REFRESH_MARGIN from the expiry
    the server reported.
    """
    access_token: str
    refresh_token: str
    expiry: datetime
    user_id: Optional[str] = None
    refresh_count: int = 0


class SessionClient(Protocol):
    async def login(self) -> TokenGrant: ...

    async def refresh(self, refresh_token: str) -> TokenGrant: ...


class SessionManager:
    """
    Owns the API session.

    Only the poll loop calls into the manager, so the session is never
    mutated concurrently.
    """

    def __init__(
        self,
        client: SessionClient,
        session: Optional[Session] = None,
    ):
        """
        Initialize the session manager.

        Args:
            client: API client able to log in and refresh tokens.
            session: Existing session, mostly useful in tests.
        """
        self.client = client
        self._session = session

    @property
    def session(self) -> Session:
        if self._session is None:
            raise AuthError("not logged in")
        return self._session

    async def login(self) -> Session:
        """
        Establish the initial session.

        Raises:
            AuthError: If the login call fails.
        """
        try:
            grant = await self.client.login()
        except AuthError:
            raise
        except CollectorError as e:
            raise AuthError(f"login failed: {e.message}", kind=e.kind) from e

        self._session = Session(
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expiry=grant.expiry - REFRESH_MARGIN,
            user_id=grant.user_id,
        )
        logger.info(
            f"Authenticated to Litter Robot API "
            f"(user={grant.user_id}, expiry={self._session.expiry.isoformat()})"
        )
        return self._session

    def needs_refresh(self, now: datetime) -> bool:
        """True once ``now`` is within REFRESH_MARGIN of the session expiry."""
        return now >= self.session.expiry - REFRESH_MARGIN

    async def ensure_valid(self, now: datetime) -> Session:
        """
        Refresh the session if it is about to expire.

        Args:
            now: Current time, timezone aware.

        Returns:
            The (possibly refreshed) session.

        Raises:
            AuthRefreshError: If the refresh call fails. The session is left
                untouched in that case.
        """
        session = self.session
        if not self.needs_refresh(now):
            return session

        logger.debug(f"Session expires at {session.expiry.isoformat()}, refreshing")
        try:
            grant = await self.client.refresh(session.refresh_token)
        except AuthRefreshError:
            raise
        except CollectorError as e:
            raise AuthRefreshError(f"session refresh failed: {e.message}", kind=e.kind) from e

        session.access_token = grant.access_token
        if grant.refresh_token:
            session.refresh_token = grant.refresh_token
        if grant.user_id:
            session.user_id = grant.user_id
        session.expiry = grant.expiry - REFRESH_MARGIN
        session.refresh_count += 1

        logger.info(f"Refreshed session, new expiry {session.expiry.isoformat()}")
        return session
