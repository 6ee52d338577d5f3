import os
import socket
import threading
import time
import unittest
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx

THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from spotify_api.auth import AuthorizationSession, OAuthAuthorizer, TokenRefresher
from spotify_api.client import SpotifyClient
from spotify_api.context import AccessTokenContext, ClientInfoContext
from spotify_api.errors import (
    AuthInfoNotFoundError,
    AuthorizationError,
    AuthorizationInProgressError,
    AuthorizationTimeoutError,
    ConfigurationError,
    SpotifyError,
    TokenRefreshError,
)

TOKEN_RESPONSE = {
    "access_token": "access-1",
    "token_type": "Bearer",
    "expires_in": 3600,
    "refresh_token": "refresh-1",
    "scope": "user-read-playback-state",
}


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TrickleTokenHandler(BaseHTTPRequestHandler):
    """Token endpoint that sends its headers at once and the body a byte at a time."""

    body = b'{"access_token": "late", "expires_in": 3600}'

    def do_POST(self):
        self.rfile.read(int(self.headers.get("Content-Length") or 0))
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        try:
            for i in range(len(self.body)):
                self.wfile.write(self.body[i : i + 1])
                self.wfile.flush()
                time.sleep(0.1)
        except (BrokenPipeError, ConnectionResetError):
            return

    def log_message(self, format, *args):
        return


class FakeSpotify:
    """Stands in for accounts.spotify.com.

    A GET on /authorize plays the browser: it hits the redirect uri on the
    real loopback listener, with the state rewritten by `state_for`.
    """

    def __init__(self, *, redirect=True, state_for=None, extra_query=None, token_status=200, token_body=None):
        self.redirect = redirect
        self.state_for = state_for or (lambda state: state)
        self.extra_query = extra_query or {}
        self.token_status = token_status
        self.token_body = TOKEN_RESPONSE if token_body is None else token_body
        self.token_forms = []
        self.callback_statuses = []
        self._threads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/authorize":
            query = dict(urllib.parse.parse_qsl(request.url.query.decode("utf-8")))
            if self.redirect:
                t = threading.Thread(target=self._browse, args=(query,), daemon=True)
                t.start()
                self._threads.append(t)
            return httpx.Response(200, text="<html>login</html>")
        if request.url.path == "/api/token":
            self.token_forms.append(dict(urllib.parse.parse_qsl(request.content.decode("utf-8"))))
            return httpx.Response(self.token_status, json=self.token_body)
        return httpx.Response(404, text="not found")

    def _browse(self, query):
        params = {"code": "auth-code", "state": self.state_for(query["state"])}
        params.update(self.extra_query)
        url = f"{query['redirect_uri']}?{urllib.parse.urlencode(params)}"
        with httpx.Client(trust_env=False) as real:
            self.callback_statuses.append(real.get(url).status_code)

    def join(self):
        for t in self._threads:
            t.join(timeout=5)


class AuthorizerTestCase(unittest.TestCase):
    def make(self, fake, *, timeout=5.0):
        self.port = free_port()
        self.client = SpotifyClient(http_client=httpx.Client(transport=httpx.MockTransport(fake)))
        self.addCleanup(self.client.close)
        authorizer = OAuthAuthorizer(self.client, timeout=timeout, settle_delay=0.05, clock=lambda: 1000.0)
        info = ClientInfoContext(
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri=f"http://127.0.0.1:{self.port}/callback",
        )
        return authorizer, info

    def assert_listener_closed(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.settimeout(1)
            self.assertNotEqual(s.connect_ex(("127.0.0.1", self.port)), 0)


class TestAuthorizationFlow(AuthorizerTestCase):
    def test_successful_authorization(self):
        fake = FakeSpotify()
        authorizer, info = self.make(fake)

        session = AuthorizationSession()
        token = authorizer.authorize(info, session)
        fake.join()

        self.assertEqual(token.access_token, "access-1")
        self.assertEqual(token.refresh_token, "refresh-1")
        self.assertEqual(token.expires_at, 4600.0)
        self.assertEqual(fake.callback_statuses, [200])
        self.assertEqual(fake.token_forms[0]["grant_type"], "authorization_code")
        self.assertEqual(fake.token_forms[0]["code"], "auth-code")
        self.assertEqual(fake.token_forms[0]["redirect_uri"], info.redirect_uri)
        self.assertIn(session.state, session.wait_for_auth_url(timeout=0))
        self.assert_listener_closed()

    def test_state_mismatch_fails_by_timeout(self):
        fake = FakeSpotify(state_for=lambda state: state + "-forged")
        authorizer, info = self.make(fake, timeout=0.5)

        with self.assertRaises(AuthorizationTimeoutError):
            authorizer.authorize(info)
        fake.join()

        self.assertEqual(fake.callback_statuses, [400])
        self.assertEqual(fake.token_forms, [])
        self.assert_listener_closed()

    def test_denied_authorization_fails_by_timeout(self):
        fake = FakeSpotify(extra_query={"error": "access_denied"})
        authorizer, info = self.make(fake, timeout=0.5)

        with self.assertRaises(AuthorizationTimeoutError):
            authorizer.authorize(info)
        fake.join()
        self.assertEqual(fake.callback_statuses, [400])

    def test_failed_exchange_is_reported(self):
        fake = FakeSpotify(token_status=400, token_body={"error": "invalid_grant"})
        authorizer, info = self.make(fake)

        with self.assertRaises(SpotifyError) as cm:
            authorizer.authorize(info)
        fake.join()
        self.assertEqual(cm.exception.status, 400)
        self.assert_listener_closed()

    def test_incomplete_token_set_is_rejected(self):
        fake = FakeSpotify(token_body={"access_token": "only-access", "expires_in": 3600})
        authorizer, info = self.make(fake)

        with self.assertRaises(AuthorizationError):
            authorizer.authorize(info)
        fake.join()

    def test_token_without_lifetime_is_rejected(self):
        fake = FakeSpotify(token_body={"access_token": "a", "refresh_token": "r"})
        authorizer, info = self.make(fake)

        with self.assertRaises(AuthorizationError) as cm:
            authorizer.authorize(info)
        fake.join()
        self.assertNotIsInstance(cm.exception, AuthorizationTimeoutError)
        self.assert_listener_closed()

    def test_missing_configuration_names_every_field(self):
        authorizer, _ = self.make(FakeSpotify(redirect=False))
        with self.assertRaises(ConfigurationError) as cm:
            authorizer.authorize(ClientInfoContext(client_id="", client_secret="", redirect_uri=""))
        self.assertEqual(len(cm.exception.problems), 3)
        self.assertIn("client id", str(cm.exception))
        self.assertIn("client secret", str(cm.exception))
        self.assertIn("redirect uri", str(cm.exception))

    def test_bearer_context_is_not_client_info(self):
        authorizer, _ = self.make(FakeSpotify(redirect=False))
        with self.assertRaises(AuthInfoNotFoundError):
            authorizer.authorize(AccessTokenContext("at"))

    def test_concurrent_attempt_is_rejected(self):
        fake = FakeSpotify(redirect=False)
        authorizer, info = self.make(fake, timeout=1.0)

        session = AuthorizationSession()
        errors = []

        def first():
            try:
                authorizer.authorize(info, session)
            except AuthorizationTimeoutError as e:
                errors.append(e)

        t = threading.Thread(target=first)
        t.start()
        session.wait_for_auth_url(timeout=5)

        with self.assertRaises(AuthorizationInProgressError):
            authorizer.authorize(info)

        t.join(timeout=5)
        self.assertEqual(len(errors), 1)
        self.assert_listener_closed()


class TestAuthorizationSession(unittest.TestCase):
    def test_slots_accept_one_value(self):
        session = AuthorizationSession(state="s")
        session.publish_auth_url("https://example/authorize")
        with self.assertRaises(AuthorizationError):
            session.publish_auth_url("https://example/again")

        session.fail(AuthorizationError("first"))
        with self.assertRaises(AuthorizationError):
            session.deliver(None)

    def test_wait_times_out(self):
        with self.assertRaises(AuthorizationTimeoutError):
            AuthorizationSession().wait_for_result(0.05)


class TestTokenRefresh(unittest.TestCase):
    def make(self, body, status=200):
        forms = []

        def handler(request):
            forms.append(dict(urllib.parse.parse_qsl(request.content.decode("utf-8"))))
            return httpx.Response(status, json=body)

        client = SpotifyClient(http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        self.addCleanup(client.close)
        return TokenRefresher(client, clock=lambda: 50.0), forms

    def ctx(self, refresh_token="old-refresh"):
        return ClientInfoContext("client-id", "client-secret", access_token="old", refresh_token=refresh_token)

    def test_prior_refresh_token_is_kept_when_omitted(self):
        refresher, forms = self.make({"access_token": "new-access", "expires_in": 3600})
        token = refresher.refresh(self.ctx())

        self.assertEqual(token.access_token, "new-access")
        self.assertEqual(token.refresh_token, "old-refresh")
        self.assertEqual(token.expires_at, 3650.0)
        self.assertEqual(
            forms, [{"grant_type": "refresh_token", "refresh_token": "old-refresh", "client_id": "client-id"}]
        )

    def test_rotated_refresh_token_is_used(self):
        refresher, _ = self.make({"access_token": "a", "expires_in": 10, "refresh_token": "rotated"})
        self.assertEqual(refresher.refresh(self.ctx()).refresh_token, "rotated")

    def test_empty_access_token_is_an_error(self):
        refresher, _ = self.make({"access_token": "", "expires_in": 3600})
        with self.assertRaises(TokenRefreshError):
            refresher.refresh(self.ctx())

    def test_missing_refresh_token_is_an_error(self):
        refresher, forms = self.make({"access_token": "a"})
        with self.assertRaises(TokenRefreshError):
            refresher.refresh(self.ctx(refresh_token=""))
        self.assertEqual(forms, [])

    def test_remote_error_is_surfaced(self):
        refresher, _ = self.make({"error": "invalid_grant"}, status=400)
        with self.assertRaises(SpotifyError):
            refresher.refresh(self.ctx())

    def test_slow_token_endpoint_is_an_authorization_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = SpotifyClient(http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        self.addCleanup(client.close)
        with self.assertRaises(AuthorizationTimeoutError):
            TokenRefresher(client, timeout=0.5).refresh(self.ctx())

    def test_refreshed_token_without_lifetime_is_rejected(self):
        for body in ({"access_token": "a2"}, {"access_token": "a2", "expires_in": 0}):
            with self.subTest(body=body):
                refresher, _ = self.make(body)
                with self.assertRaises(TokenRefreshError):
                    refresher.refresh(self.ctx())

    def test_slow_body_hits_the_refresh_deadline(self):
        port = free_port()
        server = ThreadingHTTPServer(("127.0.0.1", port), TrickleTokenHandler)
        server.daemon_threads = True
        threading.Thread(target=server.serve_forever, daemon=True).start()
        self.addCleanup(server.server_close)
        self.addCleanup(server.shutdown)

        client = SpotifyClient(
            http_client=httpx.Client(trust_env=False), token_url=f"http://127.0.0.1:{port}/api/token"
        )
        self.addCleanup(client.close)

        started = time.monotonic()
        with self.assertRaises(AuthorizationTimeoutError):
            TokenRefresher(client, timeout=0.5).refresh(self.ctx())
        self.assertLess(time.monotonic() - started, 3.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
