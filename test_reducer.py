import copy
import os
import tempfile
import unittest

import httpx

THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from managers.credential_manager import CredentialStore, Credentials
from spotify_api.auth import TokenRefresher
from spotify_api.client import SpotifyClient
from spotify_api.models import CurrentlyPlaying, Device, PlaylistSummary, SimplifiedArtist, Track
from spotify_api.token_manager import TokenInfo
from spotify_tui import effects as fx
from spotify_tui.effects import Cancel, Effect, Repeat, Timer
from spotify_tui.items import PlaylistItem, TrackItem
from spotify_tui.messages import (
    AppErr,
    CurrentlyPlayingResult,
    DevicesResult,
    KeyPress,
    NothingPlaying,
    PlaybackActionResult,
    PlaylistItemsResult,
    PlaylistsResult,
    RenewRefreshTokenResult,
    Shutdown,
    TokensPersisted,
    TopTracksResult,
)
from spotify_tui.reducer import Reducer
from spotify_tui.state import AppState
from spotify_tui.view import render_state

SONG = Track(id="t1", name="Song", uri="spotify:track:t1", artists=(SimplifiedArtist(id="a1", name="Artist"),))
PLAYLIST = PlaylistSummary(id="p1", name="Mix", uri="spotify:playlist:p1")
DEVICE = Device(name="Desk", type="Computer", is_active=True, id="d1", volume_percent=50, supports_volume=True)


class FakeApi:
    """Answers Web API and token requests from a table keyed by (method, path)."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def __call__(self, request):
        self.requests.append((request.method, request.url.path))
        status, body = self.routes.get((request.method, request.url.path), (204, None))
        if body is None:
            return httpx.Response(status)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)


class ReducerTestCase(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)

        self.api = FakeApi()
        self.client = SpotifyClient(http_client=httpx.Client(transport=httpx.MockTransport(self.api)))
        self.addCleanup(self.client.close)

        self.store = CredentialStore(os.path.join(tmp.name, "spotify-player.db"))
        self.addCleanup(self.store.close)
        self.creds = Credentials(
            client_id="id",
            client_secret="secret",
            redirect_uri="http://127.0.0.1:8888/callback",
            access_token="at",
            refresh_token="rt",
            expires_at=5000.0,
            authorized=True,
        )
        self.store.insert(self.creds)
        self.store.update(TokenInfo(access_token="at", token_type="Bearer", expires_at=5000.0, refresh_token="rt"))

        self.reducer = Reducer(
            self.client,
            self.store,
            {"poll_interval": 1.0, "volume_step": 10},
            refresher=TokenRefresher(self.client, clock=lambda: 6000.0),
        )

    def new_state(self, **kwargs):
        return AppState(credentials=self.creds, **kwargs)

    def playing_state(self, is_playing=True):
        state = self.new_state()
        state.currently_playing = CurrentlyPlaying(is_playing=is_playing, item=SONG)
        state.active_device = DEVICE
        return state

    def names(self, commands):
        return fx.describe(commands)


class TestStartup(ReducerTestCase):
    def test_startup_batch(self):
        state = self.new_state()
        commands = self.reducer.init(state)

        self.assertEqual(
            self.names(commands),
            [
                "get_top_tracks",
                "get_top_artists",
                "get_user_profile",
                "get_playlists",
                "get_available_devices",
                "get_currently_playing",
                "get_queue",
                "get_recently_played",
                "timer:token_renewal:renew_refresh_token",
                "repeat:currently_playing_poll:get_currently_playing",
            ],
        )
        self.assertFalse(state.grid.focus)

        timer = commands[-2]
        self.assertIsInstance(timer, Timer)
        self.assertEqual(timer.at, 5000.0)

        poll = commands[-1]
        self.assertIsInstance(poll, Repeat)
        self.assertEqual(poll.interval, 1.0)
        self.assertTrue(poll.stop_on_error)

    def test_construction_does_no_io(self):
        self.reducer.init(self.new_state())
        self.assertEqual(self.api.requests, [])


class TestDeterminism(ReducerTestCase):
    def test_same_input_same_output(self):
        base = self.playing_state()
        for msg in (KeyPress("n"), KeyPress("p"), KeyPress("l"), TopTracksResult((SONG,)), AppErr("x", "boom")):
            a, b = copy.deepcopy(base), copy.deepcopy(base)
            state_a, commands_a = self.reducer.update(a, msg)
            state_b, commands_b = self.reducer.update(b, msg)
            self.assertEqual(state_a, state_b)
            self.assertEqual(commands_a, commands_b)


class TestPlayback(ReducerTestCase):
    def test_toggle_without_snapshot_is_a_silent_no_op(self):
        state = self.new_state()
        before = copy.deepcopy(state)
        state, commands = self.reducer.update(state, KeyPress("p"))
        self.assertEqual(commands, [])
        self.assertEqual(state, before)
        self.assertEqual(state.errors, [])

    def test_toggle_pauses_when_playing(self):
        state, commands = self.reducer.update(self.playing_state(True), KeyPress("p"))
        self.assertEqual(self.names(commands), ["pause_playback"])

        msg = commands[0]()
        self.assertEqual(msg, PlaybackActionResult("pause"))
        self.assertIn(("PUT", "/v1/me/player/pause"), self.api.requests)

    def test_toggle_resumes_when_paused(self):
        _, commands = self.reducer.update(self.playing_state(False), KeyPress("space"))
        self.assertEqual(self.names(commands), ["resume_playback"])

    def test_skip_without_snapshot_does_nothing(self):
        _, commands = self.reducer.update(self.new_state(), KeyPress("n"))
        self.assertEqual(commands, [])

    def test_skip_then_refresh_is_chained_on_the_result(self):
        state, commands = self.reducer.update(self.playing_state(), KeyPress("n"))
        self.assertEqual(self.names(commands), ["skip_song"])
        msg = commands[0]()
        self.assertEqual(msg, PlaybackActionResult("next"))
        self.assertIn(("POST", "/v1/me/player/next"), self.api.requests)

        state, follow_up = self.reducer.update(state, msg)
        self.assertEqual(self.names(follow_up), ["get_queue", "get_currently_playing"])

    def test_volume_steps_from_device_volume(self):
        _, commands = self.reducer.update(self.playing_state(), KeyPress("+"))
        self.assertEqual(commands[0].args[1].percent, 60)
        _, commands = self.reducer.update(self.playing_state(), KeyPress("-"))
        self.assertEqual(commands[0].args[1].percent, 40)

    def test_nothing_playing_clears_snapshot(self):
        state, _ = self.reducer.update(self.playing_state(), NothingPlaying())
        self.assertIsNone(state.currently_playing)
        self.assertIsNone(state.is_playing())

    def test_currently_playing_updates_media_pane(self):
        state, _ = self.reducer.update(self.new_state(), CurrentlyPlayingResult(CurrentlyPlaying(is_playing=True, item=SONG)))
        self.assertTrue(state.is_playing())
        self.assertEqual(state.grid.pane("media").items, [TrackItem(SONG)])

    def test_devices_set_the_active_device(self):
        idle = Device(name="Phone", type="Smartphone", is_active=False, id="d2")
        state, _ = self.reducer.update(self.new_state(), DevicesResult((idle, DEVICE)))
        self.assertEqual(state.active_device, DEVICE)
        self.assertEqual(state.active_device_id(), "d1")


class TestNavigationAndSelection(ReducerTestCase):
    def test_enter_focuses_and_esc_unfocuses(self):
        state = self.new_state()
        state, _ = self.reducer.update(state, KeyPress("enter"))
        self.assertTrue(state.grid.focus)

        state, commands = self.reducer.update(state, KeyPress("esc"))
        self.assertFalse(state.grid.focus)
        self.assertFalse(state.quitting)
        self.assertEqual(commands, [])

    def test_playlist_selection_fetches_once(self):
        state = self.new_state()
        state, _ = self.reducer.update(state, PlaylistsResult((PLAYLIST,)))
        self.assertEqual(state.default_playlist_id, "p1")

        state.grid.cursor = state.grid.positions()["playlists"]
        state, _ = self.reducer.update(state, KeyPress("enter"))
        state, commands = self.reducer.update(state, KeyPress("enter"))
        self.assertEqual(self.names(commands), ["get_playlist_items"])
        self.assertEqual(state.selected, PlaylistItem(PLAYLIST))

        state, _ = self.reducer.update(state, PlaylistItemsResult("p1", (SONG,)))
        self.assertEqual(state.grid.pane("playlist_items").items, [TrackItem(SONG)])

        state.grid.set_items("playlist_items", [])
        state, commands = self.reducer.update(state, KeyPress("enter"))
        self.assertEqual(commands, [])
        self.assertEqual(state.grid.pane("playlist_items").items, [TrackItem(SONG)])

    def test_leaving_a_pane_clears_the_selection_info(self):
        state = self.new_state()
        state, _ = self.reducer.update(state, PlaylistsResult((PLAYLIST,)))
        state.grid.cursor = state.grid.positions()["playlists"]
        state, _ = self.reducer.update(state, KeyPress("enter"))
        state, _ = self.reducer.update(state, KeyPress("enter"))
        self.assertIn("Selected: Mix", render_state(state))

        state, commands = self.reducer.update(state, KeyPress("esc"))

        self.assertEqual(commands, [])
        self.assertIsNone(state.selected)
        self.assertNotIn("Selected:", render_state(state))

    def test_track_selection_fetches_artist_top_tracks(self):
        state = self.new_state()
        state, _ = self.reducer.update(state, TopTracksResult((SONG,)))
        state.grid.cursor = state.grid.positions()["tracks"]
        state, _ = self.reducer.update(state, KeyPress("enter"))
        state, commands = self.reducer.update(state, KeyPress("enter"))
        self.assertEqual(self.names(commands), ["get_artist_top_tracks"])
        self.assertEqual(commands[0].args[1].id, "a1")

    def test_add_focused_track_to_queue(self):
        state = self.new_state()
        state, _ = self.reducer.update(state, TopTracksResult((SONG,)))
        state.grid.cursor = state.grid.positions()["tracks"]
        state, _ = self.reducer.update(state, KeyPress("enter"))
        state, commands = self.reducer.update(state, KeyPress("a"))
        self.assertEqual(self.names(commands), ["add_to_queue"])
        self.assertEqual(commands[0].args[1].uri, "spotify:track:t1")


class TestTokenRenewal(ReducerTestCase):
    def test_renewal_persists_and_rearms(self):
        token = TokenInfo(access_token="fresh", token_type="Bearer", expires_at=9600.0, refresh_token="rt")
        state, commands = self.reducer.update(self.new_state(), RenewRefreshTokenResult(token))

        self.assertEqual(state.credentials.access_token, "fresh")
        self.assertEqual(
            self.names(commands),
            [
                "persist_tokens",
                "timer:token_renewal:renew_refresh_token",
                "repeat:currently_playing_poll:get_currently_playing",
            ],
        )
        self.assertEqual(commands[1].at, 9600.0)
        self.assertEqual(commands[2].effect.args[0].access_token, "fresh")

        self.assertEqual(commands[0](), TokensPersisted(9600.0))
        self.assertEqual(self.store.load().access_token, "fresh")

    def test_renewal_effect_refreshes_tokens(self):
        self.api.routes[("POST", "/api/token")] = (200, {"access_token": "new", "expires_in": 3600})
        timer = fx.renew_token_timer(self.reducer.deps, self.new_state())
        msg = timer.effect()
        self.assertIsInstance(msg, RenewRefreshTokenResult)
        self.assertEqual(msg.token.access_token, "new")
        self.assertEqual(msg.token.refresh_token, "rt")
        self.assertEqual(msg.token.expires_at, 9600.0)


class TestErrorsAndShutdown(ReducerTestCase):
    def test_errors_are_logged_and_bounded(self):
        state = self.new_state(log_size=3)
        for i in range(5):
            state, commands = self.reducer.update(state, AppErr("get_queue", f"boom {i}"))
            self.assertEqual(commands, [])
        self.assertEqual(state.errors, ["get_queue: boom 2", "get_queue: boom 3", "get_queue: boom 4"])
        self.assertFalse(state.quitting)

    def test_failed_effect_yields_app_err(self):
        self.api.routes[("GET", "/v1/me/player/queue")] = (500, "server exploded")
        msg = fx.get_queue(self.reducer.deps, self.new_state())()
        self.assertIsInstance(msg, AppErr)
        self.assertEqual(msg.status, 500)
        self.assertIn("server exploded", msg.error)

    def test_no_content_poll_yields_nothing_playing(self):
        msg = fx.get_currently_playing(self.reducer.deps, self.new_state())()
        self.assertEqual(msg, NothingPlaying())

    def test_empty_access_token_is_an_error_message(self):
        state = AppState(credentials=Credentials("id", "secret", "uri"))
        msg = fx.get_user_profile(self.reducer.deps, state)()
        self.assertIsInstance(msg, AppErr)
        self.assertEqual(self.api.requests, [])

    def test_quit_from_unfocused_grid(self):
        for key in ("esc", "q", "ctrl+c"):
            state, commands = self.reducer.update(self.new_state(), KeyPress(key))
            self.assertEqual(commands[:2], [Cancel(fx.CURRENTLY_PLAYING_POLL), Cancel(fx.TOKEN_RENEWAL)])
            self.assertIsInstance(commands[2], Effect)
            self.assertEqual(commands[2](), Shutdown())

    def test_shutdown_message_ends_the_session(self):
        state, commands = self.reducer.update(self.new_state(), Shutdown())
        self.assertTrue(state.quitting)
        self.assertEqual(commands, [])


class TestView(ReducerTestCase):
    def test_render_shows_panes_and_errors(self):
        state = self.playing_state()
        state, _ = self.reducer.update(state, TopTracksResult((SONG,)))
        state, _ = self.reducer.update(state, AppErr("get_queue", "boom"))
        text = render_state(state)
        self.assertIn("[>] Artists", text)
        self.assertIn("Song - Artist", text)
        self.assertIn("! get_queue: boom", text)


if __name__ == "__main__":
    unittest.main(verbosity=2)
