"""Messages consumed by the reducer.

Keyboard input, timer firings and effect completions all arrive as one of
these values. Every effect yields exactly one of them.
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from spotify_api.models import (
    Artist,
    CurrentlyPlaying,
    Device,
    PlaybackState,
    PlayHistory,
    PlayableItem,
    PlaylistSummary,
    Track,
    UserProfile,
    UsersQueue,
)
from spotify_api.token_manager import TokenInfo


@dataclass(frozen=True)
class KeyPress:
    key: str


@dataclass(frozen=True)
class UserProfileResult:
    profile: UserProfile


@dataclass(frozen=True)
class TopTracksResult:
    tracks: Tuple[Track, ...]


@dataclass(frozen=True)
class TopArtistsResult:
    artists: Tuple[Artist, ...]


@dataclass(frozen=True)
class PlaylistsResult:
    playlists: Tuple[PlaylistSummary, ...]


@dataclass(frozen=True)
class PlaylistItemsResult:
    playlist_id: str
    items: Tuple[PlayableItem, ...]


@dataclass(frozen=True)
class ArtistTopTracksResult:
    artist_id: str
    tracks: Tuple[Track, ...]


@dataclass(frozen=True)
class DevicesResult:
    devices: Tuple[Device, ...]


@dataclass(frozen=True)
class CurrentlyPlayingResult:
    currently_playing: CurrentlyPlaying


@dataclass(frozen=True)
class NothingPlaying:
    """The player answered 204: no track or episode is loaded."""


@dataclass(frozen=True)
class PlaybackStateResult:
    playback_state: PlaybackState


@dataclass(frozen=True)
class QueueResult:
    queue: UsersQueue


@dataclass(frozen=True)
class RecentlyPlayedResult:
    items: Tuple[PlayHistory, ...]


@dataclass(frozen=True)
class PlaybackActionResult:
    """A player command (play, pause, next, previous, queue, volume, transfer) succeeded."""

    action: str
    detail: Any = None


@dataclass(frozen=True)
class RenewRefreshTokenResult:
    token: TokenInfo


@dataclass(frozen=True)
class TokensPersisted:
    expires_at: float


@dataclass(frozen=True)
class Shutdown:
    pass


@dataclass(frozen=True)
class AppErr:
    """A failed effect. Logged by the reducer; never fatal."""

    source: str
    error: str
    status: Optional[int] = None

    def __str__(self) -> str:
        return f"{self.source}: {self.error}"
