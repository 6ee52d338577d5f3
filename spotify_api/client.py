import base64
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

import httpx

from constants import (
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_URL_ENCODED,
    DEFAULT_MARKET,
    REQUEST_TIMEOUT_SECONDS,
    SPOTIFY_API_BASE_URL,
    SPOTIFY_TOKEN_URL,
)
from utils.logger import get_logger

from .context import AccessTokenContext, ClientInfoContext, TokenContext, get_access_token, get_client_info
from .errors import DeadlineExceededError, DecodeError, NoContentError, SpotifyError, TransportError
from .models import (
    Artist,
    CurrentlyPlaying,
    Device,
    Page,
    PlaybackState,
    PlayHistory,
    PlaylistSnapshot,
    PlaylistSummary,
    SearchResult,
    Track,
    UserProfile,
    UsersQueue,
    playlist_item_from_dict,
)
from .params import (
    AddItemsToPlaylistParams,
    AddItemToQueueParams,
    ArtistTopTracksParams,
    CurrentlyPlayingParams,
    GetPlaylistParams,
    NoParams,
    PlaybackActionParams,
    PlaylistItemsParams,
    PlaylistsParams,
    RecentlyPlayedParams,
    SavedTracksParams,
    SearchParams,
    SetPlaybackVolumeParams,
    SetRepeatModeParams,
    SkipSongParams,
    TopItemsParams,
    TransferPlaybackParams,
    encode_form,
    encode_params,
)

T = TypeVar("T")

TOP_ITEM_KINDS = ("artists", "tracks")
_BODY_FRAMING_HEADERS = ("content-encoding", "content-length", "transfer-encoding")


def encode_client_info(client_id: str, client_secret: str) -> str:
    """Value of the `Authorization` header for client-credential requests."""
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def check_response(resp: httpx.Response, success: Tuple[int, ...] = (200,)) -> None:
    """Raise unless the response status is one of `success` (a plain 200 by default).

    204 maps to NoContentError so callers can tell "nothing there" from a
    failed request; any other status carries the raw body verbatim.
    """
    if resp.status_code in success:
        return
    if resp.status_code == 204:
        raise NoContentError()
    raise SpotifyError(resp.status_code, resp.text)


def decode_response(
    resp: httpx.Response, decode: Optional[Callable[[Any], T]] = None, success: Tuple[int, ...] = (200,)
) -> Optional[T]:
    check_response(resp, success)
    if decode is None:
        return None
    try:
        payload = resp.json()
    except (json.JSONDecodeError, ValueError) as e:
        raise DecodeError(f"response was not JSON (status {resp.status_code}): {resp.text}") from e
    try:
        return decode(payload)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise DecodeError(f"unexpected response shape: {e}") from e


class SpotifyClient:
    """Thin Spotify Web API client.

    The client holds no credentials: every call receives a token context and
    builds its own authenticated request from it.

    - Bearer requests come from an `AccessTokenContext`
    - Basic (client id/secret) requests come from a `ClientInfoContext`
    """

    def __init__(
        self,
        *,
        http_client: Optional[httpx.Client] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        api_base_url: str = SPOTIFY_API_BASE_URL,
        token_url: str = SPOTIFY_TOKEN_URL,
        market: str = DEFAULT_MARKET,
        logger: Optional[logging.Logger] = None,
    ):
        self._owns_http_client = http_client is None
        self.http = http_client or httpx.Client(timeout=timeout, follow_redirects=False)
        self.timeout = timeout
        self.api_base_url = api_base_url.rstrip("/")
        self.token_url = token_url
        self.market = market
        self.logger = logger or get_logger("client")

    def close(self) -> None:
        if self._owns_http_client:
            self.http.close()

    def __enter__(self) -> "SpotifyClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -----------------
    # Request builders
    # -----------------

    def api_url(self, *segments: str) -> str:
        path = "/".join(str(s).strip("/") for s in segments if str(s))
        return f"{self.api_base_url}/{path}"

    def bearer_request(
        self,
        ctx: TokenContext,
        method: str,
        url: str,
        *,
        params: Any = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Request:
        access_token = get_access_token(ctx)
        url = encode_params(url, params or NoParams())
        headers = {"Authorization": f"Bearer {access_token}", "Accept": CONTENT_TYPE_JSON}
        content = None
        if json_body is not None:
            headers["Content-Type"] = CONTENT_TYPE_JSON
            content = json.dumps(json_body).encode("utf-8")
        return self.http.build_request(method.upper(), url, headers=headers, content=content)

    def basic_request(self, ctx: TokenContext, url: str, form: Dict[str, Any]) -> httpx.Request:
        info = get_client_info(ctx)
        headers = {
            "Authorization": encode_client_info(info.client_id, info.client_secret),
            "Content-Type": CONTENT_TYPE_URL_ENCODED,
        }
        return self.http.build_request("POST", url, headers=headers, content=encode_form(form).encode("utf-8"))

    def send(self, request: httpx.Request, *, timeout: Optional[float] = None) -> httpx.Response:
        """Send a request; transport failures become TransportError.

        With `timeout` the whole exchange, body included, must finish within
        that many seconds; httpx on its own only bounds each connect or read.
        """
        self.logger.debug("%s %s%s", request.method, request.url.host, request.url.path)
        try:
            if timeout is None:
                return self.http.send(request)
            request.extensions["timeout"] = httpx.Timeout(timeout).as_dict()
            return self._send_before(request, time.monotonic() + timeout)
        except httpx.TimeoutException as e:
            raise DeadlineExceededError(f"request timed out: {request.method} {request.url.path}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"request failed: {request.method} {request.url.path}: {e}") from e

    def _send_before(self, request: httpx.Request, deadline: float) -> httpx.Response:
        resp = self.http.send(request, stream=True)
        body = bytearray()
        try:
            for chunk in resp.iter_bytes():
                body.extend(chunk)
                if time.monotonic() > deadline:
                    raise DeadlineExceededError(f"request timed out: {request.method} {request.url.path}")
        finally:
            resp.close()
        # The body is already decoded; the copy must not claim an encoding or length.
        headers = [(k, v) for k, v in resp.headers.multi_items() if k.lower() not in _BODY_FRAMING_HEADERS]
        return httpx.Response(resp.status_code, headers=headers, content=bytes(body), request=request)

    def fetch(
        self,
        request: httpx.Request,
        decode: Optional[Callable[[Any], T]] = None,
        *,
        timeout: Optional[float] = None,
        success: Tuple[int, ...] = (200,),
    ) -> Optional[T]:
        return decode_response(self.send(request, timeout=timeout), decode, success)

    def execute(self, request: httpx.Request) -> None:
        """Run a command whose success is an empty 200 or 204."""
        try:
            self.fetch(request)
        except NoContentError:
            return None

    # -----------------
    # Token endpoint
    # -----------------

    def request_token(self, ctx: ClientInfoContext, form: Dict[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        req = self.basic_request(ctx, self.token_url, form)

        def as_object(payload: Any) -> Dict[str, Any]:
            if not isinstance(payload, dict):
                raise TypeError(f"token response was not an object: {payload}")
            return payload

        return self.fetch(req, as_object, timeout=timeout)

    # -----------------
    # User data
    # -----------------

    def get_current_user_profile(self, ctx: AccessTokenContext) -> UserProfile:
        return self.fetch(self.bearer_request(ctx, "GET", self.api_url("me")), UserProfile.from_dict)

    def get_top_items(self, ctx: AccessTokenContext, kind: str, params: Optional[TopItemsParams] = None) -> Page:
        if kind not in TOP_ITEM_KINDS:
            raise ValueError(f"invalid top item type: {kind!r}")
        decode_item = Artist.from_dict if kind == "artists" else Track.from_dict
        req = self.bearer_request(ctx, "GET", self.api_url("me", "top", kind), params=params or TopItemsParams())
        return self.fetch(req, lambda data: Page.from_dict(data, decode_item))

    def get_current_users_playlists(self, ctx: AccessTokenContext, params: Optional[PlaylistsParams] = None) -> Page:
        req = self.bearer_request(ctx, "GET", self.api_url("me", "playlists"), params=params or PlaylistsParams())
        return self.fetch(req, lambda data: Page.from_dict(data, PlaylistSummary.from_dict))

    def get_users_saved_tracks(self, ctx: AccessTokenContext, params: Optional[SavedTracksParams] = None) -> Page:
        req = self.bearer_request(ctx, "GET", self.api_url("me", "tracks"), params=params or SavedTracksParams())
        return self.fetch(req, lambda data: Page.from_dict(data, lambda row: Track.from_dict(row["track"])))

    def get_recently_played(self, ctx: AccessTokenContext, params: Optional[RecentlyPlayedParams] = None) -> Page:
        req = self.bearer_request(
            ctx, "GET", self.api_url("me", "player", "recently-played"), params=params or RecentlyPlayedParams()
        )
        return self.fetch(req, lambda data: Page.from_dict(data, PlayHistory.from_dict))

    # -----------------
    # Playlists
    # -----------------

    def get_playlist(self, ctx: AccessTokenContext, params: GetPlaylistParams) -> PlaylistSummary:
        req = self.bearer_request(ctx, "GET", self.api_url("playlists", params.id), params=params)
        return self.fetch(req, PlaylistSummary.from_dict)

    def get_playlist_items(self, ctx: AccessTokenContext, params: PlaylistItemsParams) -> Page:
        req = self.bearer_request(ctx, "GET", self.api_url("playlists", params.id, "tracks"), params=params)
        return self.fetch(req, lambda data: Page.from_dict(data, playlist_item_from_dict))

    def add_items_to_playlist(self, ctx: AccessTokenContext, params: AddItemsToPlaylistParams) -> PlaylistSnapshot:
        if not params.uris:
            raise ValueError("at least one uri is required")
        req = self.bearer_request(
            ctx, "POST", self.api_url("playlists", params.id, "tracks"), params=params, json_body=params.payload()
        )
        # Spotify answers 201 Created with the new snapshot.
        return self.fetch(req, PlaylistSnapshot.from_dict, success=(200, 201))

    # -----------------
    # Artists and search
    # -----------------

    def get_artist_top_tracks(self, ctx: AccessTokenContext, params: ArtistTopTracksParams) -> List[Track]:
        req = self.bearer_request(ctx, "GET", self.api_url("artists", params.id, "top-tracks"), params=params)
        return self.fetch(req, lambda data: [Track.from_dict(t) for t in (data.get("tracks") or []) if isinstance(t, dict)])

    def search(self, ctx: AccessTokenContext, params: SearchParams) -> SearchResult:
        req = self.bearer_request(ctx, "GET", self.api_url("search"), params=params)
        return self.fetch(req, SearchResult.from_dict)

    # -----------------
    # Player
    # -----------------

    def get_available_devices(self, ctx: AccessTokenContext) -> List[Device]:
        req = self.bearer_request(ctx, "GET", self.api_url("me", "player", "devices"))
        return self.fetch(req, lambda data: [Device.from_dict(d) for d in (data.get("devices") or []) if isinstance(d, dict)])

    def get_playback_state(self, ctx: AccessTokenContext, params: Optional[CurrentlyPlayingParams] = None) -> PlaybackState:
        req = self.bearer_request(
            ctx, "GET", self.api_url("me", "player"), params=params or CurrentlyPlayingParams(market=self.market)
        )
        return self.fetch(req, PlaybackState.from_dict)

    def get_currently_playing(self, ctx: AccessTokenContext, params: Optional[CurrentlyPlayingParams] = None) -> CurrentlyPlaying:
        """Raises NoContentError when nothing is playing."""
        req = self.bearer_request(
            ctx,
            "GET",
            self.api_url("me", "player", "currently-playing"),
            params=params or CurrentlyPlayingParams(market=self.market),
        )
        return self.fetch(req, CurrentlyPlaying.from_dict)

    def get_queue(self, ctx: AccessTokenContext) -> UsersQueue:
        return self.fetch(self.bearer_request(ctx, "GET", self.api_url("me", "player", "queue")), UsersQueue.from_dict)

    def start_resume_playback(self, ctx: AccessTokenContext, params: Optional[PlaybackActionParams] = None) -> None:
        params = params or PlaybackActionParams()
        body = params.payload() if params.has_payload() else None
        self.execute(self.bearer_request(ctx, "PUT", self.api_url("me", "player", "play"), params=params, json_body=body))

    def pause_playback(self, ctx: AccessTokenContext, params: Optional[PlaybackActionParams] = None) -> None:
        self.execute(self.bearer_request(ctx, "PUT", self.api_url("me", "player", "pause"), params=params or PlaybackActionParams()))

    def skip_song(self, ctx: AccessTokenContext, params: SkipSongParams) -> None:
        self.execute(self.bearer_request(ctx, "POST", self.api_url("me", "player", params.direction), params=params))

    def add_item_to_queue(self, ctx: AccessTokenContext, params: AddItemToQueueParams) -> None:
        self.execute(self.bearer_request(ctx, "POST", self.api_url("me", "player", "queue"), params=params))

    def set_playback_volume(self, ctx: AccessTokenContext, params: SetPlaybackVolumeParams) -> None:
        self.execute(self.bearer_request(ctx, "PUT", self.api_url("me", "player", "volume"), params=params))

    def set_repeat_mode(self, ctx: AccessTokenContext, params: SetRepeatModeParams) -> None:
        self.execute(self.bearer_request(ctx, "PUT", self.api_url("me", "player", "repeat"), params=params))

    def transfer_playback(self, ctx: AccessTokenContext, params: TransferPlaybackParams) -> None:
        self.execute(self.bearer_request(ctx, "PUT", self.api_url("me", "player"), params=params, json_body=params.payload()))
