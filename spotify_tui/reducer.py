"""Application state machine.

`Reducer.update(state, msg)` is the only code that changes AppState. It never
reads the clock or performs I/O; time reaches it only through message
payloads, so equal inputs give equal outputs.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from constants import DEFAULT_MARKET, POLL_INTERVAL_SECONDS, REFRESH_TIMEOUT_SECONDS
from managers.credential_manager import CredentialStore
from spotify_api.auth import TokenRefresher
from spotify_api.client import SpotifyClient
from utils.logger import get_logger

from . import effects as fx
from .effects import Cancel, Command, EffectDeps
from .grid import DIRECTIONS
from .items import (
    ArtistItem,
    DeviceItem,
    EpisodeItem,
    PlaylistItem,
    SpotifyItem,
    TrackItem,
    item_from_playable,
    item_uri,
)
from .messages import (
    AppErr,
    ArtistTopTracksResult,
    CurrentlyPlayingResult,
    DevicesResult,
    KeyPress,
    NothingPlaying,
    PlaybackActionResult,
    PlaybackStateResult,
    PlaylistItemsResult,
    PlaylistsResult,
    QueueResult,
    RecentlyPlayedResult,
    RenewRefreshTokenResult,
    Shutdown,
    TokensPersisted,
    TopArtistsResult,
    TopTracksResult,
    UserProfileResult,
)
from .state import AppState

QUIT_KEYS = ("esc", "q")
TOGGLE_KEYS = ("p", "space")

Update = Tuple[AppState, List[Command]]


class Reducer:
    def __init__(
        self,
        client: SpotifyClient,
        store: CredentialStore,
        config: Optional[Dict[str, Any]] = None,
        *,
        refresher: Optional[TokenRefresher] = None,
        logger: Optional[logging.Logger] = None,
    ):
        config = config or {}
        self.logger = logger or get_logger("reducer")
        if refresher is None:
            refresher = TokenRefresher(client, timeout=config.get("refresh_timeout", REFRESH_TIMEOUT_SECONDS))
        self.deps = EffectDeps(
            client=client,
            refresher=refresher,
            store=store,
            market=config.get("market", DEFAULT_MARKET),
            playlist_limit=config.get("playlist_limit", 10),
            top_items_limit=config.get("top_items_limit", 20),
        )
        self.poll_interval = float(config.get("poll_interval", POLL_INTERVAL_SECONDS))
        self.volume_step = int(config.get("volume_step", 10))

        self._handlers: Dict[type, Callable[[AppState, Any], Optional[List[Command]]]] = {
            KeyPress: self._on_key,
            UserProfileResult: self._on_profile,
            TopTracksResult: self._on_top_tracks,
            TopArtistsResult: self._on_top_artists,
            PlaylistsResult: self._on_playlists,
            PlaylistItemsResult: self._on_playlist_items,
            ArtistTopTracksResult: self._on_artist_top_tracks,
            DevicesResult: self._on_devices,
            CurrentlyPlayingResult: self._on_currently_playing,
            NothingPlaying: self._on_nothing_playing,
            PlaybackStateResult: self._on_playback_state,
            QueueResult: self._on_queue,
            RecentlyPlayedResult: self._on_recently_played,
            PlaybackActionResult: self._on_playback_action,
            RenewRefreshTokenResult: self._on_renewed_token,
            TokensPersisted: self._on_tokens_persisted,
            AppErr: self._on_error,
            Shutdown: self._on_shutdown,
        }

    def init(self, state: AppState) -> List[Command]:
        """The startup batch. No pane is focused."""
        state.grid.unfocus()
        d = self.deps
        return fx.batch(
            fx.get_top_tracks(d, state),
            fx.get_top_artists(d, state),
            fx.get_user_profile(d, state),
            fx.get_playlists(d, state),
            fx.get_available_devices(d, state),
            fx.get_currently_playing(d, state),
            fx.get_queue(d, state),
            fx.get_recently_played(d, state),
            fx.renew_token_timer(d, state),
            fx.currently_playing_poll(d, state, self.poll_interval),
        )

    def update(self, state: AppState, msg: Any) -> Update:
        handler = self._handlers.get(type(msg))
        if handler is None:
            self.logger.debug("ignoring message %r", msg)
            return state, []
        return state, handler(state, msg) or []

    # -----------------
    # Keyboard
    # -----------------

    def _on_key(self, state: AppState, msg: KeyPress) -> Optional[List[Command]]:
        key = msg.key
        grid = state.grid

        if key == "ctrl+c":
            return self._quit(state)

        if grid.focus:
            if key == "esc":
                grid.unfocus()
                state.selected = None
                return None
            if key in ("j", "down"):
                grid.move_item(1)
                return None
            if key in ("k", "up"):
                grid.move_item(-1)
                return None
            if key == "enter":
                return self._select(state, grid.selected_item())
            if key == "a":
                return fx.batch(self._queue_selected(state))
        else:
            if key in QUIT_KEYS:
                return self._quit(state)
            if key in DIRECTIONS:
                grid.move(key)
                return None
            if key == "enter":
                grid.focus_current()
                return None

        return self._global_key(state, key)

    def _global_key(self, state: AppState, key: str) -> Optional[List[Command]]:
        d = self.deps
        if key in TOGGLE_KEYS:
            return fx.batch(fx.toggle_playback(d, state))
        if key == "n":
            return fx.batch(fx.skip_song(d, state, "next"))
        if key == "b":
            return fx.batch(fx.skip_song(d, state, "previous"))
        if key in ("+", "="):
            return fx.batch(self._step_volume(state, self.volume_step))
        if key == "-":
            return fx.batch(self._step_volume(state, -self.volume_step))
        if key == "r":
            return fx.batch(
                fx.get_currently_playing(d, state),
                fx.get_queue(d, state),
                fx.get_available_devices(d, state),
                fx.get_playlists(d, state),
            )
        return None

    def _quit(self, state: AppState) -> List[Command]:
        return [Cancel(fx.CURRENTLY_PLAYING_POLL), Cancel(fx.TOKEN_RENEWAL), fx.shutdown()]

    def _step_volume(self, state: AppState, delta: int) -> Optional[Command]:
        device = state.active_device
        if device is None:
            return None
        return fx.set_volume(self.deps, state, (device.volume_percent or 0) + delta)

    def _queue_selected(self, state: AppState) -> Optional[Command]:
        item = state.grid.selected_item()
        if not isinstance(item, (TrackItem, EpisodeItem)):
            return None
        return fx.add_to_queue(self.deps, state, item_uri(item) or "")

    def _select(self, state: AppState, item: Optional[SpotifyItem]) -> Optional[List[Command]]:
        if item is None:
            return None
        state.selected = item
        d = self.deps

        if isinstance(item, PlaylistItem):
            playlist_id = item.playlist.id
            state.default_playlist_id = playlist_id
            cached = state.playlist_items.get(playlist_id)
            if cached is not None:
                state.grid.set_items("playlist_items", [item_from_playable(p) for p in cached])
                return None
            return fx.batch(fx.get_playlist_items(d, state, playlist_id))

        if isinstance(item, (ArtistItem, TrackItem)):
            if isinstance(item, ArtistItem):
                artist_id = item.artist.id
            elif item.track.artists:
                artist_id = item.track.artists[0].id
            else:
                return None
            cached = state.artist_top_tracks.get(artist_id)
            if cached is not None:
                state.grid.set_items("playlist_items", [TrackItem(t) for t in cached])
                return None
            return fx.batch(fx.get_artist_top_tracks(d, state, artist_id))

        if isinstance(item, DeviceItem):
            return fx.batch(fx.transfer_playback(d, state, item.device.id))

        if isinstance(item, EpisodeItem):
            return fx.batch(fx.resume_playback(d, state, uris=[item.episode.uri]))

        return None

    # -----------------
    # Effect results
    # -----------------

    def _on_profile(self, state: AppState, msg: UserProfileResult):
        state.profile = msg.profile

    def _on_top_tracks(self, state: AppState, msg: TopTracksResult):
        state.top_tracks = list(msg.tracks)
        state.grid.set_items("tracks", [TrackItem(t) for t in msg.tracks])

    def _on_top_artists(self, state: AppState, msg: TopArtistsResult):
        state.top_artists = list(msg.artists)
        state.grid.set_items("artists", [ArtistItem(a) for a in msg.artists])

    def _on_playlists(self, state: AppState, msg: PlaylistsResult):
        state.playlists = {p.id: p for p in msg.playlists}
        state.grid.set_items("playlists", [PlaylistItem(p) for p in msg.playlists])
        if state.default_playlist_id not in state.playlists:
            state.default_playlist_id = msg.playlists[0].id if msg.playlists else None

    def _on_playlist_items(self, state: AppState, msg: PlaylistItemsResult):
        state.playlist_items[msg.playlist_id] = tuple(msg.items)
        if state.default_playlist_id == msg.playlist_id:
            state.grid.set_items("playlist_items", [item_from_playable(p) for p in msg.items])

    def _on_artist_top_tracks(self, state: AppState, msg: ArtistTopTracksResult):
        state.artist_top_tracks[msg.artist_id] = tuple(msg.tracks)
        state.grid.set_items("playlist_items", [TrackItem(t) for t in msg.tracks])

    def _on_devices(self, state: AppState, msg: DevicesResult):
        state.devices = list(msg.devices)
        state.grid.set_items("devices", [DeviceItem(dev) for dev in msg.devices])
        active = [dev for dev in msg.devices if dev.is_active]
        state.active_device = active[0] if active else None

    def _on_currently_playing(self, state: AppState, msg: CurrentlyPlayingResult):
        state.currently_playing = msg.currently_playing
        item = msg.currently_playing.item
        state.grid.set_items("media", [item_from_playable(item)] if item is not None else [])

    def _on_nothing_playing(self, state: AppState, msg: NothingPlaying):
        state.currently_playing = None
        state.grid.set_items("media", [])

    def _on_playback_state(self, state: AppState, msg: PlaybackStateResult):
        state.playback_state = msg.playback_state
        state.active_device = msg.playback_state.device

    def _on_queue(self, state: AppState, msg: QueueResult):
        state.queue = msg.queue
        state.grid.set_items("queue", [item_from_playable(p) for p in msg.queue.queue])

    def _on_recently_played(self, state: AppState, msg: RecentlyPlayedResult):
        state.recently_played = list(msg.items)

    def _on_playback_action(self, state: AppState, msg: PlaybackActionResult):
        d = self.deps
        label = msg.action if msg.detail is None else f"{msg.action} {msg.detail}"
        state.add_msg(label)

        if msg.action in ("next", "previous"):
            return fx.batch(fx.get_queue(d, state), fx.get_currently_playing(d, state))
        if msg.action in ("play", "pause"):
            return fx.batch(fx.get_currently_playing(d, state))
        if msg.action == "queue":
            return fx.batch(fx.get_queue(d, state))
        if msg.action in ("transfer", "volume"):
            return fx.batch(fx.get_available_devices(d, state), fx.get_playback_state(d, state))
        return None

    def _on_renewed_token(self, state: AppState, msg: RenewRefreshTokenResult):
        d = self.deps
        state.credentials = state.credentials.with_tokens(msg.token)
        state.add_msg("access token renewed")
        # The poll captured the previous token; re-arming replaces it.
        return fx.batch(
            fx.persist_tokens(d, msg.token),
            fx.renew_token_timer(d, state),
            fx.currently_playing_poll(d, state, self.poll_interval),
        )

    def _on_tokens_persisted(self, state: AppState, msg: TokensPersisted):
        self.logger.debug("tokens persisted, expiring at %s", msg.expires_at)

    def _on_error(self, state: AppState, msg: AppErr):
        self.logger.warning("effect failed: %s", msg)
        state.add_error(str(msg))

    def _on_shutdown(self, state: AppState, msg: Shutdown):
        state.quitting = True
