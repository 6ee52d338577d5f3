import os
import sqlite3
import tempfile
import unittest

import httpx

THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from managers.credential_manager import CredentialStore, Credentials
from spotify_api.auth import TokenRefresher
from spotify_api.client import SpotifyClient
from spotify_api.errors import ConfigurationError, CredentialStoreError
from spotify_api.token_manager import TokenInfo
from spotify_tui.session import Session

INITIAL = Credentials(client_id="id", client_secret="secret", redirect_uri="http://127.0.0.1:8888/callback")


class StoreTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.db_path = os.path.join(self.tmp.name, "spotify-player.db")

    def open_store(self):
        store = CredentialStore(self.db_path)
        self.addCleanup(store.close)
        return store


class TestCredentialStore(StoreTestCase):
    def test_first_run_has_no_row(self):
        self.assertIsNone(self.open_store().load())

    def test_insert_is_unauthorized_until_tokens_are_stored(self):
        store = self.open_store()
        store.insert(INITIAL)

        loaded = store.load()
        self.assertFalse(loaded.authorized)
        self.assertTrue(loaded.is_new_login())

        store.update(TokenInfo(access_token="at", token_type="Bearer", expires_at=1700000000.0, refresh_token="rt"))
        loaded = store.load()
        self.assertTrue(loaded.authorized)
        self.assertEqual(loaded.access_token, "at")
        self.assertEqual(loaded.refresh_token, "rt")
        self.assertEqual(loaded.expires_at, 1700000000.0)
        self.assertFalse(loaded.is_new_login())

    def test_expiry_is_stored_as_text(self):
        store = self.open_store()
        store.insert(INITIAL)
        store.update(TokenInfo(access_token="at", token_type="Bearer", expires_at=0.0, refresh_token="rt"))
        store.close()

        with sqlite3.connect(self.db_path) as conn:
            (raw,) = conn.execute("SELECT expires_at FROM config WHERE id = 1").fetchone()
        self.assertEqual(raw, "Thu Jan 01 00:00:00 UTC 1970")

    def test_update_keeps_refresh_token_when_absent(self):
        store = self.open_store()
        store.insert(INITIAL)
        store.update(TokenInfo(access_token="at", token_type="Bearer", expires_at=10.0, refresh_token="rt"))
        store.update(TokenInfo(access_token="at2", token_type="Bearer", expires_at=20.0))

        loaded = store.load()
        self.assertEqual(loaded.access_token, "at2")
        self.assertEqual(loaded.refresh_token, "rt")

    def test_single_row(self):
        store = self.open_store()
        store.insert(INITIAL)
        with self.assertRaises(CredentialStoreError):
            store.insert(INITIAL)

    def test_update_client_info_keeps_tokens(self):
        store = self.open_store()
        store.insert(INITIAL)
        store.update(TokenInfo(access_token="at", token_type="Bearer", expires_at=10.0, refresh_token="rt"))
        store.update_client_info("new-id", "new-secret", "http://127.0.0.1:9999/callback")

        loaded = store.load()
        self.assertEqual(
            (loaded.client_id, loaded.client_secret, loaded.redirect_uri),
            ("new-id", "new-secret", "http://127.0.0.1:9999/callback"),
        )
        self.assertEqual(loaded.access_token, "at")
        self.assertTrue(loaded.authorized)

    def test_update_without_row_fails(self):
        store = self.open_store()
        with self.assertRaises(CredentialStoreError):
            store.update(TokenInfo(access_token="at", token_type="Bearer", expires_at=1.0))

    def test_close_is_idempotent(self):
        store = self.open_store()
        store.close()
        store.close()
        self.assertTrue(store.closed)
        with self.assertRaises(CredentialStoreError):
            store.load()

    def test_credentials_expiry(self):
        creds = Credentials("id", "secret", "uri", access_token="at", refresh_token="rt", expires_at=100.0)
        self.assertFalse(creds.is_token_expired(now=99.0))
        self.assertTrue(creds.is_token_expired(now=100.0))
        self.assertNotIn("secret", repr(creds))


class FakeAuthorizer:
    def __init__(self, token):
        self.token = token
        self.calls = 0

    def authorize(self, ctx, session=None):
        self.calls += 1
        session.publish_auth_url("https://accounts.spotify.com/authorize?state=" + session.state)
        return self.token


class TestSessionSetup(StoreTestCase):
    def make_session(self, *, authorizer=None, token_handler=None, now=1000.0, prompt=None, config=None):
        handler = token_handler or (lambda request: httpx.Response(500, text="unexpected"))
        client = SpotifyClient(http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        self.addCleanup(client.close)
        cfg = {
            "config_dir": self.tmp.name,
            "db_file": "spotify-player.db",
            "spotify_client_id": "id",
            "spotify_client_secret": "secret",
            "spotify_redirect_uri": "http://127.0.0.1:8888/callback",
        }
        cfg.update(config or {})
        self.announced = []
        session = Session(
            cfg,
            client=client,
            authorizer=authorizer,
            refresher=TokenRefresher(client, clock=lambda: now),
            prompt=prompt,
            announce=self.announced.append,
            clock=lambda: now,
        )
        self.addCleanup(session.close)
        return session

    def test_new_login_authorizes_and_persists(self):
        authorizer = FakeAuthorizer(
            TokenInfo(access_token="at", token_type="Bearer", expires_at=4600.0, refresh_token="rt")
        )
        session = self.make_session(authorizer=authorizer)

        creds = session.setup()

        self.assertEqual(authorizer.calls, 1)
        self.assertEqual(len(self.announced), 1)
        self.assertTrue(creds.authorized)
        stored = session.store.load()
        self.assertTrue(stored.authorized)
        self.assertEqual(stored.access_token, "at")
        self.assertEqual(stored.refresh_token, "rt")

    def test_expired_token_is_refreshed_and_persisted(self):
        store = CredentialStore(self.db_path)
        store.insert(INITIAL)
        store.update(TokenInfo(access_token="old", token_type="Bearer", expires_at=500.0, refresh_token="rt"))
        store.close()

        def handler(request):
            return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})

        authorizer = FakeAuthorizer(None)
        session = self.make_session(authorizer=authorizer, token_handler=handler, now=1000.0)
        self.assertTrue(session.is_token_expired(session.store.load()))

        creds = session.setup()

        self.assertEqual(authorizer.calls, 0)
        self.assertEqual(creds.access_token, "fresh")
        self.assertEqual(creds.refresh_token, "rt")
        stored = session.store.load()
        self.assertEqual(stored.access_token, "fresh")
        self.assertEqual(stored.refresh_token, "rt")
        self.assertEqual(stored.expires_at, 4600.0)
        self.assertFalse(session.is_token_expired())

    def test_valid_token_is_used_as_is(self):
        store = CredentialStore(self.db_path)
        store.insert(INITIAL)
        store.update(TokenInfo(access_token="at", token_type="Bearer", expires_at=5000.0, refresh_token="rt"))
        store.close()

        authorizer = FakeAuthorizer(None)
        creds = self.make_session(authorizer=authorizer, now=1000.0).setup()
        self.assertEqual(authorizer.calls, 0)
        self.assertEqual(creds.access_token, "at")

    def test_missing_client_info_is_prompted(self):
        prompted = []

        def prompt(defaults):
            prompted.append(defaults)
            return {"client_id": "typed-id", "client_secret": "typed-secret", "redirect_uri": defaults["redirect_uri"]}

        authorizer = FakeAuthorizer(
            TokenInfo(access_token="at", token_type="Bearer", expires_at=4600.0, refresh_token="rt")
        )
        session = self.make_session(
            authorizer=authorizer, prompt=prompt, config={"spotify_client_id": "", "spotify_client_secret": ""}
        )
        session.setup()

        self.assertEqual(len(prompted), 1)
        self.assertEqual(session.store.load().client_id, "typed-id")

    def test_missing_client_info_without_prompt_fails(self):
        session = self.make_session(
            authorizer=FakeAuthorizer(None), config={"spotify_client_id": "", "spotify_client_secret": ""}
        )
        with self.assertRaises(ConfigurationError) as cm:
            session.setup()
        self.assertEqual(len(cm.exception.problems), 2)

    def test_login_replaces_stored_client_info_that_no_longer_verifies(self):
        store = CredentialStore(self.db_path)
        store.insert(Credentials(client_id="", client_secret="secret", redirect_uri="http://127.0.0.1:8888/callback"))
        store.close()

        def prompt(defaults):
            return dict(defaults, client_id="typed-id")

        authorizer = FakeAuthorizer(
            TokenInfo(access_token="at", token_type="Bearer", expires_at=4600.0, refresh_token="rt")
        )
        creds = self.make_session(authorizer=authorizer, prompt=prompt).login()

        self.assertEqual(creds.client_id, "typed-id")
        self.assertEqual(creds.access_token, "at")
        stored = CredentialStore(self.db_path)
        self.addCleanup(stored.close)
        self.assertEqual(stored.load().client_id, "typed-id")


if __name__ == "__main__":
    unittest.main(verbosity=2)
