"""
ExactPilot authentication and token management.

Holds the single OAuth2 session, persists its token record, and renews
the access token before it expires.
"""

from exactpilot.auth.session import REFRESH_MARGIN, SessionState
from exactpilot.auth.token_store import TokenRecord, TokenStore

__all__ = [
    "REFRESH_MARGIN",
    "SessionState",
    "TokenRecord",
    "TokenStore",
]
