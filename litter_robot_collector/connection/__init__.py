"""
Litter Robot API connection.

Session lifecycle and the HTTP client.
"""
from .litter_api import LitterApiClient
from .session import REFRESH_MARGIN, Session, SessionManager, TokenGrant

__all__ = [
    "LitterApiClient",
    "REFRESH_MARGIN",
    "Session",
    "SessionManager",
    "TokenGrant",
]
