"""Command line entry points: the interactive player and one-shot commands."""

import argparse
from typing import Any, Callable, Dict, List, Optional, TypeVar

from menus.login_menu import announce_authorize_url, prompt_client_info
from spotify_api.context import AccessTokenContext
from spotify_api.errors import NoContentError, SpotifyError, SpotifyPlayerError
from spotify_api.params import CurrentlyPlayingParams, PlaybackActionParams, SkipSongParams
from spotify_api.token_manager import format_expires_at
from utils.logger import get_logger, log_error, log_info, log_success, log_warning

from .session import Session
from .state import AppState

T = TypeVar("T")

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spotify-player", description="Spotify player for the terminal")
    sub = parser.add_subparsers(dest="command", metavar="command")

    player = sub.add_parser("player", help="Control playback on the active device")
    player.add_argument("-p", "--toggle", dest="toggle", action="store_true", help="Pause if playing, otherwise resume.")
    player.add_argument("-next", "--next", dest="next", action="store_true", help="Skip to the next track.")
    player.add_argument("-prev", "--prev", dest="prev", action="store_true", help="Skip to the previous track.")

    sub.add_parser("login", help="Authorize again, replacing the stored tokens")
    sub.add_parser("status", help="Show the stored authorization status")
    return parser


def make_session(config: Dict[str, Any]) -> Session:
    open_browser = bool(config.get("open_browser", True))
    return Session(
        config,
        prompt=prompt_client_info,
        announce=lambda url: announce_authorize_url(url, open_browser=open_browser),
    )


def with_refresh(session: Session, call: Callable[[AccessTokenContext], T]) -> T:
    """Run `call`; on HTTP 401 refresh the token once and retry."""
    ctx = AccessTokenContext(session.credentials.access_token or "")
    try:
        return call(ctx)
    except SpotifyError as e:
        if e.status != 401:
            raise
        logger.info("access token rejected, refreshing and retrying")
        creds = session.refresh()
        return call(AccessTokenContext(creds.access_token or ""))


def _toggle(session: Session, ctx: AccessTokenContext) -> str:
    client = session.client
    try:
        playing = client.get_currently_playing(ctx, CurrentlyPlayingParams(market=client.market)).is_playing
    except NoContentError:
        playing = False
    if playing:
        client.pause_playback(ctx, PlaybackActionParams())
        return "Paused playback"
    client.start_resume_playback(ctx, PlaybackActionParams())
    return "Resumed playback"


def _skip(session: Session, ctx: AccessTokenContext, direction: str) -> str:
    session.client.skip_song(ctx, SkipSongParams(direction=direction))
    return f"Skipped to {direction} track"


def _now_playing(session: Session, ctx: AccessTokenContext) -> str:
    client = session.client
    try:
        cp = client.get_currently_playing(ctx, CurrentlyPlayingParams(market=client.market))
    except NoContentError:
        return "Nothing is playing"
    if cp.item is None:
        return "Nothing is playing"
    artists = getattr(cp.item, "artist_names", "") or getattr(cp.item, "show_name", "")
    status = "Playing" if cp.is_playing else "Paused"
    return f"{status}: {cp.item.name}" + (f" - {artists}" if artists else "")


def run_player(session: Session, args: argparse.Namespace) -> int:
    session.setup()

    actions: List[Callable[[AccessTokenContext], str]] = []
    if args.toggle:
        actions.append(lambda ctx: _toggle(session, ctx))
    if args.next:
        actions.append(lambda ctx: _skip(session, ctx, "next"))
    if args.prev:
        actions.append(lambda ctx: _skip(session, ctx, "previous"))
    if not actions:
        actions.append(lambda ctx: _now_playing(session, ctx))

    for action in actions:
        log_success(with_refresh(session, action))
    return 0


def run_status(session: Session) -> int:
    creds = session.store.load()
    if creds is None:
        log_warning("Not set up yet. Run the player or `login` to authorize.")
        return 1
    log_info(f"Client ID: {creds.client_id}")
    log_info(f"Redirect URI: {creds.redirect_uri}")
    log_info(f"Authorized: {'yes' if creds.authorized else 'no'}")
    if creds.expires_at is not None:
        state = "expired" if session.is_token_expired(creds) else "valid"
        log_info(f"Access token: {state} (expires {format_expires_at(creds.expires_at)})")
    else:
        log_info("Access token: none")
    return 0


def run_login(session: Session) -> int:
    session.login()
    log_success("Authorized with Spotify")
    return 0


def run_tui(config: Dict[str, Any]) -> int:
    from .reducer import Reducer
    from .tui import PlayerApp

    session = make_session(config)
    try:
        creds = session.setup()
    except SpotifyPlayerError as e:
        log_error(f"Setup failed: {e}")
        session.close()
        return 1

    state = AppState(credentials=creds, log_size=int(config.get("message_log_size", 50)))
    reducer = Reducer(session.client, session.store, config, refresher=session.refresher)
    try:
        PlayerApp(reducer, state, session.store, config).run()
    finally:
        session.close()
    return 0


def main(argv: Optional[List[str]], config: Dict[str, Any]) -> int:
    """Dispatch a command line. No arguments starts the interactive player."""
    if not argv:
        return run_tui(config)

    args = build_parser().parse_args(argv)
    if args.command is None:
        return run_tui(config)

    session = make_session(config)
    try:
        if args.command == "player":
            return run_player(session, args)
        if args.command == "login":
            return run_login(session)
        return run_status(session)
    except SpotifyPlayerError as e:
        logger.error("%s failed: %s", args.command, e)
        log_error(str(e))
        return 1
    finally:
        session.close()
