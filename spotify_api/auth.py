import concurrent.futures
import logging
import secrets
import threading
import time
import urllib.parse
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from constants import (
    AUTH_SETTLE_DELAY_SECONDS,
    AUTH_TIMEOUT_SECONDS,
    CALLBACK_PATH,
    DEFAULT_SCOPES,
    REFRESH_TIMEOUT_SECONDS,
    SPOTIFY_AUTHORIZE_URL,
    STATE_BYTES,
)
from utils.logger import get_logger

from .client import SpotifyClient
from .context import ClientInfoContext, TokenContext, get_client_info
from .errors import (
    AuthorizationError,
    AuthorizationInProgressError,
    AuthorizationTimeoutError,
    ConfigurationError,
    DeadlineExceededError,
    SpotifyPlayerError,
    TokenRefreshError,
)
from .token_manager import TokenInfo

CallbackResult = Tuple[int, str]

_SUCCESS_PAGE = """<html>
<head><title>Authorization Success</title></head>
<body style="font-family: sans-serif; text-align: center; margin-top: 50px;">
<h1>Authorization successful</h1>
<p>You can close this window and return to the terminal.</p>
</body>
</html>"""

_FAILURE_PAGE = """<html>
<head><title>Authorization Failed</title></head>
<body style="font-family: sans-serif; text-align: center; margin-top: 50px;">
<h1>Authorization failed</h1>
<p>{reason}</p>
</body>
</html>"""


def get_app_scope(scopes: Optional[Iterable[str]] = None) -> str:
    scope_list = list(DEFAULT_SCOPES if scopes is None else scopes)
    return " ".join(str(s).strip() for s in scope_list if str(s).strip())


def generate_state(n: int = STATE_BYTES) -> str:
    """Random anti-forgery value, `n` bytes of entropy hex encoded."""
    return secrets.token_hex(max(n, STATE_BYTES))


def verify_client_info(info: ClientInfoContext) -> Optional[ConfigurationError]:
    """Return one error naming every missing field, or None."""
    problems: List[str] = []
    if not (info.client_id or "").strip():
        problems.append("provided client id is invalid")
    if not (info.client_secret or "").strip():
        problems.append("provided client secret is invalid")
    if not (info.redirect_uri or "").strip():
        problems.append("provided redirect uri is invalid")
    if problems:
        return ConfigurationError(problems)
    return None


def check_spotify_credentials(client_id: str, client_secret: str, redirect_uri: str) -> Dict[str, Any]:
    """Validate client credentials and return a structured status dict."""

    error = verify_client_info(
        ClientInfoContext(client_id=client_id or "", client_secret=client_secret or "", redirect_uri=redirect_uri or "")
    )
    if error is not None:
        return {
            "ok": False,
            "missing": error.problems,
            "redirect_uri": redirect_uri,
            "message": f"Spotify client credentials are incomplete: {error}",
        }

    parsed = urllib.parse.urlsplit(redirect_uri)
    if parsed.scheme != "http" or not parsed.hostname or parsed.path.rstrip("/") != CALLBACK_PATH:
        return {
            "ok": False,
            "missing": [],
            "redirect_uri": redirect_uri,
            "message": (
                f"Redirect URI must be a local http URL ending in {CALLBACK_PATH}.\n"
                "Recommended default: http://127.0.0.1:8888/callback"
            ),
        }

    return {"ok": True, "missing": [], "redirect_uri": redirect_uri, "message": "Spotify credentials look OK."}


def spotify_app_setup_instructions(*, redirect_uri: str = "http://127.0.0.1:8888/callback") -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or "http://127.0.0.1:8888/callback"
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID and Client Secret; you will be asked for them next\n\n"
        "Notes:\n"
        "- This player uses the Authorization Code grant (client secret required).\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
    )


def build_authorize_url(
    client_id: str,
    redirect_uri: str,
    state: str,
    *,
    scopes: Optional[Iterable[str]] = None,
    base_url: str = SPOTIFY_AUTHORIZE_URL,
) -> str:
    params = {
        "response_type": "code",
        "client_id": client_id,
        "scope": get_app_scope(scopes),
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"{base_url}?{urllib.parse.urlencode(params)}"


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL and return {"code": ..., "state": ..., "error": ...} (missing keys omitted)."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    return _first_values(parsed.query)


def _first_values(query: str) -> Dict[str, str]:
    qs = urllib.parse.parse_qs(query)
    out: Dict[str, str] = {}
    for key in ("code", "state", "error"):
        if qs.get(key):
            out[key] = str(qs[key][0])
    return out


def listener_address(redirect_uri: str) -> Tuple[str, int]:
    parsed = urllib.parse.urlsplit(redirect_uri)
    if not parsed.hostname:
        raise ConfigurationError([f"redirect uri has no host: {redirect_uri}"])
    try:
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
    except ValueError as e:
        raise ConfigurationError([f"redirect uri has an invalid port: {redirect_uri}"]) from e
    return parsed.hostname, port


class AuthorizationSession:
    """One login attempt.

    Holds the anti-forgery `state` and two one-shot slots: the authorization
    URL handed to the caller, and the token result handed to the waiter.
    Each slot accepts exactly one value.
    """

    def __init__(self, state: Optional[str] = None):
        self.state = state or generate_state()
        self.auth_url: "concurrent.futures.Future[str]" = concurrent.futures.Future()
        self.result: "concurrent.futures.Future[TokenInfo]" = concurrent.futures.Future()

    def publish_auth_url(self, url: str) -> None:
        try:
            self.auth_url.set_result(url)
        except concurrent.futures.InvalidStateError as e:
            raise AuthorizationError("authorization url was already delivered for this attempt") from e

    def wait_for_auth_url(self, timeout: Optional[float] = None) -> str:
        try:
            return self.auth_url.result(timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            raise AuthorizationTimeoutError("authorization url was not produced in time") from e

    def deliver(self, token: TokenInfo) -> None:
        try:
            self.result.set_result(token)
        except concurrent.futures.InvalidStateError as e:
            raise AuthorizationError("authorization result was already delivered for this attempt") from e

    def fail(self, error: BaseException) -> None:
        try:
            self.result.set_exception(error)
        except concurrent.futures.InvalidStateError as e:
            raise AuthorizationError("authorization result was already delivered for this attempt") from e

    def wait_for_result(self, timeout: float) -> TokenInfo:
        try:
            return self.result.result(timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            raise AuthorizationTimeoutError(f"no authorization callback received within {timeout:g}s") from e


class _CallbackHandler(BaseHTTPRequestHandler):
    server: "CallbackServer"

    def do_GET(self):
        parsed = urllib.parse.urlsplit(self.path)
        if parsed.path.rstrip("/") != CALLBACK_PATH:
            self._reply(404, _FAILURE_PAGE.format(reason="Unknown route."))
            return
        status, body = self.server.on_callback(_first_values(parsed.query))
        self._reply(status, body)

    def _reply(self, status: int, body: str) -> None:
        data = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format, *args):
        self.server.logger.debug("callback listener: " + format, *args)


class CallbackServer(HTTPServer):
    """Loopback listener serving the single `/callback` route of one attempt."""

    def __init__(
        self,
        address: Tuple[str, int],
        on_callback: Callable[[Dict[str, str]], CallbackResult],
        logger: logging.Logger,
    ):
        self.on_callback = on_callback
        self.logger = logger
        self._thread: Optional[threading.Thread] = None
        super().__init__(address, _CallbackHandler)

    def start(self) -> "CallbackServer":
        self._thread = threading.Thread(target=self.serve_forever, name="oauth-callback", daemon=True)
        self._thread.start()
        self.logger.debug("listening for callback on %s:%s", *self.server_address[:2])
        return self

    def stop(self) -> None:
        if self._thread is not None:
            self.shutdown()
            self._thread.join(timeout=5)
            self._thread = None
        self.server_close()
        self.logger.debug("authorization listener closed")


class OAuthAuthorizer:
    """Spotify OAuth Authorization Code grant with a local callback listener."""

    def __init__(
        self,
        client: SpotifyClient,
        *,
        timeout: float = AUTH_TIMEOUT_SECONDS,
        settle_delay: float = AUTH_SETTLE_DELAY_SECONDS,
        authorize_url: str = SPOTIFY_AUTHORIZE_URL,
        scopes: Optional[Iterable[str]] = None,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.timeout = float(timeout)
        self.settle_delay = float(settle_delay)
        self.authorize_url = authorize_url
        self.scopes = list(DEFAULT_SCOPES if scopes is None else scopes)
        self.clock = clock
        self.logger = logger or get_logger("auth")
        self._attempt_lock = threading.Lock()

    def authorize(self, ctx: TokenContext, session: Optional[AuthorizationSession] = None) -> TokenInfo:
        """Run one authorization attempt and return a complete token set.

        The caller may pass its own `session` to receive the authorization
        URL (for display or a browser) from `session.wait_for_auth_url()`.
        """
        self.logger.debug("authorizing client")
        info = get_client_info(ctx)

        error = verify_client_info(info)
        if error is not None:
            self.logger.error("invalid client info provided: %s", error)
            raise error

        address = listener_address(info.redirect_uri)

        if not self._attempt_lock.acquire(blocking=False):
            raise AuthorizationInProgressError("an authorization attempt is already in progress")
        try:
            session = session or AuthorizationSession()
            try:
                server = CallbackServer(address, lambda query: self.handle_callback(session, info, query), self.logger)
            except OSError as e:
                raise AuthorizationError(f"unable to listen on {address[0]}:{address[1]}: {e}") from e

            server.start()
            try:
                time.sleep(self.settle_delay)
                self._send_authorization_request(session, info)
                self.logger.debug("waiting for authorization callback")
                token = session.wait_for_result(self.timeout)
            finally:
                server.stop()
        finally:
            self._attempt_lock.release()

        self.logger.debug("finished authorizing client")
        return token

    def _send_authorization_request(self, session: AuthorizationSession, info: ClientInfoContext) -> None:
        url = build_authorize_url(
            info.client_id, info.redirect_uri, session.state, scopes=self.scopes, base_url=self.authorize_url
        )
        self.logger.debug("sending authorization request")
        session.publish_auth_url(url)
        request = self.client.http.build_request("GET", url)
        # The real answer arrives on the callback route.
        self.client.send(request)

    def handle_callback(self, session: AuthorizationSession, info: ClientInfoContext, query: Dict[str, str]) -> CallbackResult:
        """Validate one callback hit and, when valid, exchange the code.

        Invalid hits are logged and answered with 400 but never delivered:
        the waiting caller only learns about them through its timeout.
        """
        self.logger.debug("handling callback request")

        error = query.get("error", "")
        if error:
            self.logger.error("authorization callback returned an error: %s", error)
            return 400, _FAILURE_PAGE.format(reason="Spotify denied the authorization request.")

        state = query.get("state", "")
        if not secrets.compare_digest(state.encode("utf-8"), session.state.encode("utf-8")):
            self.logger.error("incorrect state in authorization callback")
            return 400, _FAILURE_PAGE.format(reason="State mismatch.")

        code = query.get("code", "")
        if not code:
            self.logger.error("authorization callback did not include a code")
            return 400, _FAILURE_PAGE.format(reason="Missing authorization code.")

        if session.result.done():
            self.logger.warning("ignoring repeated authorization callback")
            return 400, _FAILURE_PAGE.format(reason="This authorization attempt is already complete.")

        try:
            token = self.exchange_code(info, code)
        except SpotifyPlayerError as e:
            self.logger.error("unable to exchange authorization code: %s", e)
            session.fail(e)
            return 502, _FAILURE_PAGE.format(reason="Token exchange failed.")

        session.deliver(token)
        return 200, _SUCCESS_PAGE

    def exchange_code(self, info: ClientInfoContext, code: str) -> TokenInfo:
        payload = self.client.request_token(
            info,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": info.redirect_uri,
            },
        )
        now = self.clock()
        token = TokenInfo.from_spotify_token_response(payload, now=now)
        if not token.is_complete():
            raise AuthorizationError("token exchange returned an incomplete token set")
        if not token.expires_after(now):
            raise AuthorizationError(f"token exchange returned no usable lifetime: expires_in={payload.get('expires_in')!r}")
        return token


class TokenRefresher:
    """Exchanges a refresh token for a new access token."""

    def __init__(
        self,
        client: SpotifyClient,
        *,
        timeout: float = REFRESH_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.timeout = float(timeout)
        self.clock = clock
        self.logger = logger or get_logger("refresh")

    def refresh(self, ctx: TokenContext) -> TokenInfo:
        info = get_client_info(ctx)
        if not info.refresh_token:
            raise TokenRefreshError("no refresh token available")

        form = {
            "grant_type": "refresh_token",
            "refresh_token": info.refresh_token,
            "client_id": info.client_id,
        }
        # The worker bounds a read that stalls right before the deadline.
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="refresh")
        try:
            future = pool.submit(self.client.request_token, info, form, timeout=self.timeout)
            payload = future.result(timeout=self.timeout)
        except (concurrent.futures.TimeoutError, DeadlineExceededError) as e:
            raise AuthorizationTimeoutError(f"token refresh did not complete within {self.timeout:g}s") from e
        finally:
            pool.shutdown(wait=False)

        now = self.clock()
        token = TokenInfo.from_spotify_token_response(payload, now=now)
        if not token.access_token:
            raise TokenRefreshError("refresh token was not refreshed: empty access token")
        if not token.expires_after(now):
            raise TokenRefreshError(f"refresh returned no usable lifetime: expires_in={payload.get('expires_in')!r}")

        # Spotify may omit refresh_token on refresh; keep existing.
        token = token.with_fallback_refresh_token(info.refresh_token)
        self.logger.info("access token refreshed")
        return token
