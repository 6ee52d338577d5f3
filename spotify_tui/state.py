from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from managers.credential_manager import Credentials
from spotify_api.context import AccessTokenContext, ClientInfoContext
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

from .grid import PaneGrid, default_grid
from .items import SpotifyItem


@dataclass
class AppState:
    """Everything the UI shows. Only the reducer changes it."""

    credentials: Credentials
    profile: Optional[UserProfile] = None
    top_tracks: List[Track] = field(default_factory=list)
    top_artists: List[Artist] = field(default_factory=list)
    playlists: Dict[str, PlaylistSummary] = field(default_factory=dict)
    playlist_items: Dict[str, Tuple[PlayableItem, ...]] = field(default_factory=dict)
    artist_top_tracks: Dict[str, Tuple[Track, ...]] = field(default_factory=dict)
    default_playlist_id: Optional[str] = None
    devices: List[Device] = field(default_factory=list)
    active_device: Optional[Device] = None
    currently_playing: Optional[CurrentlyPlaying] = None
    playback_state: Optional[PlaybackState] = None
    queue: Optional[UsersQueue] = None
    recently_played: List[PlayHistory] = field(default_factory=list)
    grid: PaneGrid = field(default_factory=default_grid)
    selected: Optional[SpotifyItem] = None
    msgs: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    log_size: int = 50
    quitting: bool = False

    def access_token_context(self) -> AccessTokenContext:
        return AccessTokenContext(access_token=self.credentials.access_token or "")

    def client_info_context(self) -> ClientInfoContext:
        creds = self.credentials
        return ClientInfoContext(
            client_id=creds.client_id,
            client_secret=creds.client_secret,
            redirect_uri=creds.redirect_uri,
            access_token=creds.access_token or "",
            refresh_token=creds.refresh_token or "",
        )

    def active_device_id(self) -> Optional[str]:
        if self.active_device is None:
            return None
        return self.active_device.id

    def is_playing(self) -> Optional[bool]:
        """None when there is no currently-playing snapshot yet."""
        if self.currently_playing is None:
            return None
        return self.currently_playing.is_playing

    def add_msg(self, msg: str) -> None:
        self.msgs.append(msg)
        del self.msgs[: max(len(self.msgs) - self.log_size, 0)]

    def add_error(self, err: str) -> None:
        self.errors.append(err)
        del self.errors[: max(len(self.errors) - self.log_size, 0)]
