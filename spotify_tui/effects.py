"""Command/effect layer.

Each constructor reads the state snapshot it is given and returns a value
describing one remote call. Nothing runs until the runtime executes it; when
it does, it yields exactly one message. Constructors return None when there
is nothing to do.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from managers.credential_manager import CredentialStore
from spotify_api.auth import TokenRefresher
from spotify_api.client import SpotifyClient
from spotify_api.context import AccessTokenContext, ClientInfoContext
from spotify_api.errors import NoContentError, SpotifyPlayerError
from spotify_api.params import (
    AddItemToQueueParams,
    ArtistTopTracksParams,
    CurrentlyPlayingParams,
    PlaybackActionParams,
    PlaylistItemsParams,
    PlaylistsParams,
    RecentlyPlayedParams,
    SetPlaybackVolumeParams,
    SkipSongParams,
    TopItemsParams,
    TransferPlaybackParams,
)
from spotify_api.token_manager import TokenInfo
from utils.logger import get_logger

from .messages import (
    AppErr,
    ArtistTopTracksResult,
    CurrentlyPlayingResult,
    DevicesResult,
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

CURRENTLY_PLAYING_POLL = "currently_playing_poll"
TOKEN_RENEWAL = "token_renewal"


@dataclass(frozen=True)
class Effect:
    """One deferred remote call. Equality ignores the callable."""

    name: str
    args: Tuple[Any, ...] = ()
    run: Optional[Callable[[], Any]] = field(default=None, compare=False, repr=False)

    def __call__(self) -> Any:
        if self.run is None:
            raise RuntimeError(f"effect {self.name} has nothing to run")
        return self.run()


@dataclass(frozen=True)
class Timer:
    """Run `effect` once at wall-clock time `at`. Rescheduling a key replaces it."""

    key: str
    at: float
    effect: Effect


@dataclass(frozen=True)
class Repeat:
    """Run `effect` every `interval` seconds until cancelled.

    With `stop_on_error` the task ends after an effect yields AppErr.
    """

    key: str
    interval: float
    effect: Effect
    stop_on_error: bool = True


@dataclass(frozen=True)
class Cancel:
    key: str


Command = Union[Effect, Timer, Repeat, Cancel]


@dataclass(frozen=True)
class EffectDeps:
    """Collaborators the effects call into."""

    client: SpotifyClient
    refresher: TokenRefresher
    store: CredentialStore
    market: str = "US"
    playlist_limit: int = 10
    top_items_limit: int = 20
    logger: logging.Logger = field(default_factory=lambda: get_logger("effects"), compare=False)


def batch(*commands: Optional[Command]) -> List[Command]:
    """Drop the no-op entries of an ordered batch."""
    return [c for c in commands if c is not None]


def _guarded(name: str, fn: Callable[[], Any], logger: logging.Logger) -> Any:
    try:
        return fn()
    except SpotifyPlayerError as e:
        logger.warning("%s failed: %s", name, e)
        return AppErr(name, str(e), getattr(e, "status", None))


def _effect(deps: EffectDeps, name: str, args: Sequence[Any], fn: Callable[[], Any]) -> Effect:
    return Effect(name, tuple(args), lambda: _guarded(name, fn, deps.logger))


def _bearer(deps: EffectDeps, name: str, ctx: AccessTokenContext, args: Sequence[Any], fn: Callable[[], Any]) -> Effect:
    def run():
        if not ctx.access_token:
            return AppErr(name, f"access token is empty in {name}")
        return fn()

    return _effect(deps, name, (ctx, *args), run)


# -----------------
# Data fetches
# -----------------


def get_user_profile(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    return _bearer(deps, "get_user_profile", ctx, (), lambda: UserProfileResult(deps.client.get_current_user_profile(ctx)))


def get_top_tracks(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    params = TopItemsParams(limit=deps.top_items_limit)
    return _bearer(
        deps, "get_top_tracks", ctx, (params,), lambda: TopTracksResult(deps.client.get_top_items(ctx, "tracks", params).items)
    )


def get_top_artists(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    params = TopItemsParams(limit=deps.top_items_limit)
    return _bearer(
        deps,
        "get_top_artists",
        ctx,
        (params,),
        lambda: TopArtistsResult(deps.client.get_top_items(ctx, "artists", params).items),
    )


def get_playlists(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    params = PlaylistsParams(limit=deps.playlist_limit)
    return _bearer(
        deps,
        "get_playlists",
        ctx,
        (params,),
        lambda: PlaylistsResult(deps.client.get_current_users_playlists(ctx, params).items),
    )


def get_available_devices(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    return _bearer(
        deps, "get_available_devices", ctx, (), lambda: DevicesResult(tuple(deps.client.get_available_devices(ctx)))
    )


def get_currently_playing(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    params = CurrentlyPlayingParams(market=deps.market)

    def run():
        try:
            return CurrentlyPlayingResult(deps.client.get_currently_playing(ctx, params))
        except NoContentError:
            return NothingPlaying()

    return _bearer(deps, "get_currently_playing", ctx, (params,), run)


def get_playback_state(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    params = CurrentlyPlayingParams(market=deps.market)

    def run():
        try:
            return PlaybackStateResult(deps.client.get_playback_state(ctx, params))
        except NoContentError:
            return NothingPlaying()

    return _bearer(deps, "get_playback_state", ctx, (params,), run)


def get_queue(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    return _bearer(deps, "get_queue", ctx, (), lambda: QueueResult(deps.client.get_queue(ctx)))


def get_recently_played(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    params = RecentlyPlayedParams(limit=deps.top_items_limit)
    return _bearer(
        deps,
        "get_recently_played",
        ctx,
        (params,),
        lambda: RecentlyPlayedResult(deps.client.get_recently_played(ctx, params).items),
    )


def get_playlist_items(deps: EffectDeps, state: AppState, playlist_id: str) -> Optional[Effect]:
    """Fetch a playlist's items unless they are already cached."""
    if not playlist_id or playlist_id in state.playlist_items:
        return None
    ctx = state.access_token_context()
    params = PlaylistItemsParams(id=playlist_id, market=deps.market)
    return _bearer(
        deps,
        "get_playlist_items",
        ctx,
        (params,),
        lambda: PlaylistItemsResult(playlist_id, deps.client.get_playlist_items(ctx, params).items),
    )


def get_artist_top_tracks(deps: EffectDeps, state: AppState, artist_id: str) -> Optional[Effect]:
    """Fetch an artist's top tracks unless they are already cached."""
    if not artist_id or artist_id in state.artist_top_tracks:
        return None
    ctx = state.access_token_context()
    params = ArtistTopTracksParams(id=artist_id, market=deps.market)
    return _bearer(
        deps,
        "get_artist_top_tracks",
        ctx,
        (params,),
        lambda: ArtistTopTracksResult(artist_id, tuple(deps.client.get_artist_top_tracks(ctx, params))),
    )


# -----------------
# Player commands
# -----------------


def pause_playback(deps: EffectDeps, state: AppState) -> Effect:
    ctx = state.access_token_context()
    params = PlaybackActionParams(device_id=state.active_device_id())

    def run():
        deps.client.pause_playback(ctx, params)
        return PlaybackActionResult("pause")

    return _bearer(deps, "pause_playback", ctx, (params,), run)


def resume_playback(deps: EffectDeps, state: AppState, *, uris: Optional[Sequence[str]] = None, context_uri: Optional[str] = None) -> Effect:
    ctx = state.access_token_context()
    params = PlaybackActionParams(
        device_id=state.active_device_id(),
        context_uri=context_uri,
        uris=tuple(uris) if uris is not None else None,
    )

    def run():
        deps.client.start_resume_playback(ctx, params)
        return PlaybackActionResult("play")

    return _bearer(deps, "resume_playback", ctx, (params,), run)


def toggle_playback(deps: EffectDeps, state: AppState) -> Optional[Effect]:
    """Pause when playing, resume when paused; nothing without a snapshot."""
    playing = state.is_playing()
    if playing is None:
        return None
    if playing:
        return pause_playback(deps, state)
    return resume_playback(deps, state)


def skip_song(deps: EffectDeps, state: AppState, direction: str = "next") -> Optional[Effect]:
    if state.currently_playing is None:
        return None
    ctx = state.access_token_context()
    params = SkipSongParams(direction=direction, device_id=state.active_device_id())

    def run():
        deps.client.skip_song(ctx, params)
        return PlaybackActionResult(direction)

    return _bearer(deps, "skip_song", ctx, (params,), run)


def add_to_queue(deps: EffectDeps, state: AppState, uri: str) -> Optional[Effect]:
    if not uri:
        return None
    ctx = state.access_token_context()
    params = AddItemToQueueParams(uri=uri, device_id=state.active_device_id())

    def run():
        deps.client.add_item_to_queue(ctx, params)
        return PlaybackActionResult("queue", uri)

    return _bearer(deps, "add_to_queue", ctx, (params,), run)


def set_volume(deps: EffectDeps, state: AppState, percent: int) -> Optional[Effect]:
    device = state.active_device
    if device is None or not device.supports_volume:
        return None
    percent = min(max(int(percent), 0), 100)
    ctx = state.access_token_context()
    params = SetPlaybackVolumeParams(percent=percent, device_id=device.id)

    def run():
        deps.client.set_playback_volume(ctx, params)
        return PlaybackActionResult("volume", percent)

    return _bearer(deps, "set_volume", ctx, (params,), run)


def transfer_playback(deps: EffectDeps, state: AppState, device_id: Optional[str]) -> Optional[Effect]:
    if not device_id:
        return None
    ctx = state.access_token_context()
    params = TransferPlaybackParams(device_id=device_id, play=bool(state.is_playing()))

    def run():
        deps.client.transfer_playback(ctx, params)
        return PlaybackActionResult("transfer", device_id)

    return _bearer(deps, "transfer_playback", ctx, (params,), run)


# -----------------
# Token lifecycle
# -----------------


def renew_refresh_token(deps: EffectDeps, ctx: ClientInfoContext) -> Effect:
    return _effect(deps, "renew_refresh_token", (ctx,), lambda: RenewRefreshTokenResult(deps.refresher.refresh(ctx)))


def renew_token_timer(deps: EffectDeps, state: AppState) -> Optional[Timer]:
    """Arm the refresh for the moment the current access token expires."""
    expires_at = state.credentials.expires_at
    if expires_at is None or not state.credentials.refresh_token:
        return None
    return Timer(TOKEN_RENEWAL, float(expires_at), renew_refresh_token(deps, state.client_info_context()))


def persist_tokens(deps: EffectDeps, token: TokenInfo) -> Effect:
    def run():
        deps.store.update(token)
        return TokensPersisted(token.expires_at)

    return _effect(deps, "persist_tokens", (token,), run)


# -----------------
# Lifecycle
# -----------------


def currently_playing_poll(deps: EffectDeps, state: AppState, interval: float) -> Repeat:
    return Repeat(CURRENTLY_PLAYING_POLL, float(interval), get_currently_playing(deps, state))


def cancel(key: str) -> Cancel:
    return Cancel(key)


def shutdown() -> Effect:
    return Effect("shutdown", (), Shutdown)


def describe(commands: Sequence[Command]) -> List[str]:
    out: List[str] = []
    for c in commands:
        if isinstance(c, Effect):
            out.append(c.name)
        elif isinstance(c, (Timer, Repeat)):
            out.append(f"{type(c).__name__.lower()}:{c.key}:{c.effect.name}")
        else:
            out.append(f"cancel:{c.key}")
    return out

