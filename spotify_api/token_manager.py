import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from constants import EXPIRES_AT_FORMAT


@dataclass(frozen=True)
class TokenInfo:
    """Canonical token set produced by the authorization and refresh grants."""

    access_token: str
    token_type: str
    expires_at: float
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    @staticmethod
    def from_spotify_token_response(payload: Dict[str, Any], *, now: Optional[float] = None) -> "TokenInfo":
        """Convert Spotify token response JSON into TokenInfo.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (optional on refresh)
        - scope (space-delimited string)
        """

        now_ts = float(time.time() if now is None else now)
        expires_in = lifetime_seconds(payload)

        return TokenInfo(
            access_token=str(payload.get("access_token") or ""),
            token_type=str(payload.get("token_type") or "Bearer"),
            expires_at=now_ts + expires_in,
            refresh_token=payload.get("refresh_token"),
            scope=payload.get("scope"),
        )

    def with_fallback_refresh_token(self, refresh_token: Optional[str]) -> "TokenInfo":
        """Keep `refresh_token` when the response did not carry a new one."""
        if self.refresh_token:
            return self
        return replace(self, refresh_token=refresh_token)

    def is_complete(self) -> bool:
        return bool(self.access_token) and bool(self.refresh_token)

    def expires_after(self, now: float) -> bool:
        return float(self.expires_at) > float(now)

    def __repr__(self) -> str:
        return f"TokenInfo(token_type={self.token_type!r}, expires_at={self.expires_at!r}, scope={self.scope!r})"


def lifetime_seconds(payload: Dict[str, Any]) -> float:
    """`expires_in` as seconds; a missing or malformed value counts as 0."""
    try:
        return float(payload.get("expires_in") or 0)
    except (TypeError, ValueError):
        return 0.0

def is_expired(expires_at: Optional[float], *, now: Optional[float] = None) -> bool:
    """A token is stale once `now >= expires_at`; a missing expiry is stale."""
    if expires_at is None:
        return True
    now_ts = float(time.time() if now is None else now)
    return now_ts >= float(expires_at)


def format_expires_at(expires_at: float) -> str:
    # Whole seconds only; the stored layout has no sub-second field.
    return datetime.fromtimestamp(int(expires_at), tz=timezone.utc).strftime(EXPIRES_AT_FORMAT)


def parse_expires_at(value: str) -> float:
    parsed = datetime.strptime(value.strip(), EXPIRES_AT_FORMAT)
    return parsed.replace(tzinfo=timezone.utc).timestamp()
