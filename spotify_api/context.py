"""Request-scoped credentials.

A context is attached to every outgoing request instead of living on the
client, so two requests built from two different snapshots never share state.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .errors import AccessTokenNotFoundError, AuthInfoNotFoundError


@dataclass(frozen=True)
class AccessTokenContext:
    access_token: str

    def __repr__(self) -> str:
        return "AccessTokenContext(access_token=***)"


@dataclass(frozen=True)
class ClientInfoContext:
    client_id: str
    client_secret: str
    redirect_uri: str = ""
    access_token: str = ""
    refresh_token: str = ""

    def __repr__(self) -> str:
        return f"ClientInfoContext(client_id={self.client_id!r}, redirect_uri={self.redirect_uri!r})"


TokenContext = Union[AccessTokenContext, ClientInfoContext]


def with_access_token(access_token: str) -> AccessTokenContext:
    return AccessTokenContext(access_token=access_token)


def with_client_info(
    client_id: str,
    client_secret: str,
    *,
    redirect_uri: str = "",
    access_token: str = "",
    refresh_token: str = "",
) -> ClientInfoContext:
    return ClientInfoContext(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        access_token=access_token,
        refresh_token=refresh_token,
    )


def get_access_token(ctx: Optional[TokenContext]) -> str:
    if not isinstance(ctx, AccessTokenContext):
        raise AccessTokenNotFoundError()
    return ctx.access_token


def get_client_info(ctx: Optional[TokenContext]) -> ClientInfoContext:
    if not isinstance(ctx, ClientInfoContext):
        raise AuthInfoNotFoundError()
    return ctx
