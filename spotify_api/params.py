"""Query parameters for each request kind.

Each request owns a small frozen value type; `set()` writes its fields into a
plain dict and `encode_params()` turns that into a URL. Neither touches the
network, so request construction can be tested on its own.
"""

import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from constants import DEFAULT_MARKET

QueryValues = Dict[str, str]


def _put(values: QueryValues, key: str, value: Any) -> None:
    if value is None or value == "":
        return
    values[key] = str(value)


@dataclass(frozen=True)
class NoParams:
    def set(self, values: QueryValues) -> None:
        return None


@dataclass(frozen=True)
class TopItemsParams:
    limit: int = 20
    offset: int = 0
    time_range: Optional[str] = None

    def set(self, values: QueryValues) -> None:
        _put(values, "limit", self.limit)
        _put(values, "offset", self.offset)
        _put(values, "time_range", self.time_range)


@dataclass(frozen=True)
class PlaylistsParams:
    limit: int = 10
    offset: int = 0

    def set(self, values: QueryValues) -> None:
        _put(values, "limit", self.limit)
        _put(values, "offset", self.offset)


@dataclass(frozen=True)
class GetPlaylistParams:
    id: str
    market: str = DEFAULT_MARKET

    def set(self, values: QueryValues) -> None:
        _put(values, "market", self.market)


@dataclass(frozen=True)
class PlaylistItemsParams:
    id: str
    market: str = DEFAULT_MARKET
    limit: Optional[int] = None
    offset: Optional[int] = None

    def set(self, values: QueryValues) -> None:
        _put(values, "market", self.market)
        _put(values, "limit", self.limit)
        _put(values, "offset", self.offset)


@dataclass(frozen=True)
class AddItemsToPlaylistParams:
    id: str
    uris: Tuple[str, ...] = ()
    position: Optional[int] = None

    def set(self, values: QueryValues) -> None:
        return None

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"uris": list(self.uris)}
        if self.position is not None:
            body["position"] = self.position
        return body


@dataclass(frozen=True)
class CurrentlyPlayingParams:
    market: str = DEFAULT_MARKET
    additional_types: Optional[str] = None

    def set(self, values: QueryValues) -> None:
        _put(values, "market", self.market)
        _put(values, "additional_types", self.additional_types)


@dataclass(frozen=True)
class PlaybackActionParams:
    """Start/resume or pause on a device.

    `context_uri`, `uris` and `position_ms` are only sent when starting
    playback of something specific.
    """

    device_id: Optional[str] = None
    context_uri: Optional[str] = None
    uris: Optional[Tuple[str, ...]] = None
    position_ms: Optional[int] = None

    def set(self, values: QueryValues) -> None:
        _put(values, "device_id", self.device_id)

    def has_payload(self) -> bool:
        return self.context_uri is not None or self.uris is not None or self.position_ms is not None

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if self.context_uri is not None:
            body["context_uri"] = self.context_uri
        if self.uris is not None:
            body["uris"] = list(self.uris)
        if self.position_ms is not None:
            body["position_ms"] = self.position_ms
        return body


SKIP_DIRECTIONS = ("next", "previous")


@dataclass(frozen=True)
class SkipSongParams:
    direction: str = "next"
    device_id: Optional[str] = None

    def __post_init__(self):
        if self.direction not in SKIP_DIRECTIONS:
            raise ValueError(f"invalid skip direction: {self.direction!r}")

    def set(self, values: QueryValues) -> None:
        _put(values, "device_id", self.device_id)


@dataclass(frozen=True)
class AddItemToQueueParams:
    uri: str
    device_id: Optional[str] = None

    def set(self, values: QueryValues) -> None:
        _put(values, "uri", self.uri)
        _put(values, "device_id", self.device_id)


@dataclass(frozen=True)
class SetPlaybackVolumeParams:
    percent: int
    device_id: Optional[str] = None

    def __post_init__(self):
        if not 0 <= int(self.percent) <= 100:
            raise ValueError(f"volume percent out of range: {self.percent}")

    def set(self, values: QueryValues) -> None:
        _put(values, "volume_percent", int(self.percent))
        _put(values, "device_id", self.device_id)


@dataclass(frozen=True)
class TransferPlaybackParams:
    device_id: str
    play: bool = False

    def set(self, values: QueryValues) -> None:
        return None

    def payload(self) -> Dict[str, Any]:
        return {"device_ids": [self.device_id], "play": self.play}


REPEAT_STATES = ("track", "context", "off")


@dataclass(frozen=True)
class SetRepeatModeParams:
    state: str
    device_id: Optional[str] = None

    def __post_init__(self):
        if self.state not in REPEAT_STATES:
            raise ValueError(f"invalid repeat state: {self.state!r}")

    def set(self, values: QueryValues) -> None:
        _put(values, "state", self.state)
        _put(values, "device_id", self.device_id)


@dataclass(frozen=True)
class RecentlyPlayedParams:
    """`after` wins over `before` when both are given; the API accepts only one."""

    limit: Optional[int] = None
    after: Optional[int] = None
    before: Optional[int] = None

    def set(self, values: QueryValues) -> None:
        _put(values, "limit", self.limit)
        if self.after:
            _put(values, "after", self.after)
        elif self.before:
            _put(values, "before", self.before)


@dataclass(frozen=True)
class SavedTracksParams:
    limit: int = 20
    offset: int = 0
    market: Optional[str] = None

    def set(self, values: QueryValues) -> None:
        _put(values, "limit", self.limit)
        _put(values, "offset", self.offset)
        _put(values, "market", self.market)


@dataclass(frozen=True)
class ArtistTopTracksParams:
    id: str
    market: str = DEFAULT_MARKET

    def set(self, values: QueryValues) -> None:
        _put(values, "market", self.market)


DEFAULT_SEARCH_TYPES = ("artist", "album", "track", "playlist")


@dataclass(frozen=True)
class SearchParams:
    q: str
    types: Tuple[str, ...] = field(default=DEFAULT_SEARCH_TYPES)
    market: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    def set(self, values: QueryValues) -> None:
        _put(values, "q", self.q)
        _put(values, "type", ",".join(self.types or DEFAULT_SEARCH_TYPES))
        _put(values, "market", self.market)
        _put(values, "limit", self.limit)
        _put(values, "offset", self.offset)


def query_values(params: Any) -> QueryValues:
    values: QueryValues = {}
    params.set(values)
    return values


def encode_params(url: str, params: Any) -> str:
    """Return `url` with `params` written into its query string."""
    values = query_values(params)
    if not values:
        return url
    parsed = urllib.parse.urlsplit(url)
    existing = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    merged: List[Tuple[str, str]] = [(k, v) for k, v in existing if k not in values]
    merged.extend(sorted(values.items()))
    return urllib.parse.urlunsplit(parsed._replace(query=urllib.parse.urlencode(merged)))


def encode_form(values: Dict[str, Any]) -> str:
    """URL-encode a request body, dropping empty values."""
    return urllib.parse.urlencode({k: str(v) for k, v in values.items() if v is not None and v != ""})
