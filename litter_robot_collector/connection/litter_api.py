"""
Litter Robot cloud API client.

Thin async client over httpx that logs in, refreshes tokens and fetches
robot states. HTTP failures are classified as transient or permanent so
the poll loop can decide whether to retry.
"""
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Type

import httpx

from ..config import LitterRobotSettings
from ..devices.robot import RobotState
from ..exceptions import (
    AuthError,
    AuthRefreshError,
    CollectorError,
    ErrorKind,
    FetchError,
)
from .session import Session, TokenGrant

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LitterApiClient:
    """
    Client for the Litter Robot API.

    Responsibilities:
    - Password login and token refresh
    - Fetching the account's robots
    """

    def __init__(
        self,
        settings: LitterRobotSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the client.

        Args:
            settings: Litter Robot API settings.
            transport: Optional httpx transport, used by tests.
            clock: Source of the current time for token expiry.
        """
        self.settings = settings
        self._transport = transport
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Initialize the HTTP client."""
        headers = {"Accept": "application/json"}
        if self.settings.api_key:
            headers["x-api-key"] = self.settings.api_key

        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=self.settings.timeout,
            transport=self._transport,
        )
        logger.info(f"Litter Robot API client initialized: {self.settings.api_endpoint}")

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Litter Robot API client disconnected")

    async def login(self) -> TokenGrant:
        """
        Log in with the configured email and password.

        Returns:
            Token grant including the account's user id.

        Raises:
            AuthError: If login or the user lookup fails.
        """
        data = {
            "grant_type": "password",
            "username": self.settings.email,
            "password": self.settings.password,
        }
        payload = await self._request(
            "POST", self.settings.auth_endpoint, AuthError, data=self._with_client(data)
        )
        grant = self._parse_grant(payload, AuthError)

        users = await self._request(
            "GET", self._api_url("/users"), AuthError, token=grant.access_token
        )
        try:
            user_id = str(users["user"]["userId"])
        except (KeyError, TypeError) as e:
            raise AuthError("user lookup returned no user id", kind=ErrorKind.PERMANENT) from e

        return replace(grant, user_id=user_id)

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """
        Exchange a refresh token for a new access token.

        Raises:
            AuthRefreshError: If the refresh call fails.
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        payload = await self._request(
            "POST", self.settings.auth_endpoint, AuthRefreshError, data=self._with_client(data)
        )
        return self._parse_grant(payload, AuthRefreshError)

    async def fetch_robots(self, session: Session) -> List[RobotState]:
        """
        Fetch the current state of every robot on the account.

        Args:
            session: Valid API session.

        Returns:
            One state per robot.

        Raises:
            FetchError: If the request fails or the payload is malformed.
        """
        payload = await self._request(
            "GET",
            self._api_url(f"/users/{session.user_id}/robots"),
            FetchError,
            token=session.access_token,
        )
        if not isinstance(payload, list):
            raise FetchError("robots response is not a list", kind=ErrorKind.PERMANENT)

        robots = []
        for item in payload:
            if not isinstance(item, dict):
                raise FetchError("robot entry is not an object", kind=ErrorKind.PERMANENT)
            robots.append(RobotState.from_payload(item))

        logger.debug(f"Fetched {len(robots)} robots")
        return robots

    def _api_url(self, path: str) -> str:
        return self.settings.api_endpoint.rstrip("/") + path

    def _with_client(self, data: Dict[str, str]) -> Dict[str, str]:
        if self.settings.client_id:
            data["client_id"] = self.settings.client_id
        if self.settings.client_secret:
            data["client_secret"] = self.settings.client_secret
        return data

    def _parse_grant(
        self,
        payload: Any,
        error_cls: Type[CollectorError],
    ) -> TokenGrant:
        try:
            access_token = str(payload["access_token"])
            expires_in = float(payload.get("expires_in", 3600))
        except (KeyError, TypeError, ValueError) as e:
            raise error_cls("token response is malformed", kind=ErrorKind.PERMANENT) from e

        return TokenGrant(
            access_token=access_token,
            refresh_token=str(payload.get("refresh_token") or ""),
            expiry=self._clock() + timedelta(seconds=expires_in),
        )

    async def _request(
        self,
        method: str,
        url: str,
        error_cls: Type[CollectorError],
        token: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Send a request and decode the JSON body.

        Timeouts, connection errors, 429 and 5xx responses raise a transient
        ``error_cls``; other 4xx responses and bad JSON raise a permanent one.
        """
        if not self._client:
            raise error_cls("Litter Robot API client not connected", kind=ErrorKind.PERMANENT)

        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise error_cls(
                f"{method} {url} timed out", kind=ErrorKind.TRANSIENT
            ) from e
        except httpx.TransportError as e:
            raise error_cls(
                f"{method} {url} failed: {e}", kind=ErrorKind.TRANSIENT
            ) from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise error_cls(
                f"{method} {url} returned {status}",
                kind=ErrorKind.TRANSIENT,
                details={"status_code": status},
            )
        if status >= 400:
            raise error_cls(
                f"{method} {url} returned {status}: {response.text}",
                kind=ErrorKind.PERMANENT,
                details={"status_code": status},
            )

        try:
            return response.json()
        except ValueError as e:
            raise error_cls(
                f"{method} {url} returned invalid JSON", kind=ErrorKind.PERMANENT
            ) from e
