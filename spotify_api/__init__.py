"""Spotify Web API integration (OAuth Authorization Code grant).

The client is stateless: credentials travel with each call in a token
context (see context.py).
"""

from .auth import AuthorizationSession, OAuthAuthorizer, TokenRefresher
from .client import SpotifyClient
from .context import AccessTokenContext, ClientInfoContext, with_access_token, with_client_info
from .token_manager import TokenInfo

__all__ = [
    "AuthorizationSession",
    "OAuthAuthorizer",
    "TokenRefresher",
    "SpotifyClient",
    "AccessTokenContext",
    "ClientInfoContext",
    "with_access_token",
    "with_client_info",
    "TokenInfo",
]
