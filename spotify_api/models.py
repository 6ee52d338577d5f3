"""Typed views over the remote API's JSON.

Only the fields the player reads are kept. Fields the API may omit are
`Optional` and stay `None` when absent, which is different from present-but-empty.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

T = TypeVar("T")


def _str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _opt_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    return int(value)


@dataclass(frozen=True)
class SimplifiedArtist:
    id: str
    name: str
    uri: str = ""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SimplifiedArtist":
        return SimplifiedArtist(id=_str(data, "id"), name=_str(data, "name"), uri=_str(data, "uri"))


@dataclass(frozen=True)
class Artist:
    id: str
    name: str
    uri: str = ""
    popularity: int = 0
    genres: Tuple[str, ...] = ()

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Artist":
        return Artist(
            id=_str(data, "id"),
            name=_str(data, "name"),
            uri=_str(data, "uri"),
            popularity=int(data.get("popularity") or 0),
            genres=tuple(data.get("genres") or ()),
        )


@dataclass(frozen=True)
class Track:
    id: str
    name: str
    uri: str = ""
    artists: Tuple[SimplifiedArtist, ...] = ()
    album_name: str = ""
    duration_ms: int = 0
    popularity: int = 0
    track_number: int = 0
    is_playable: Optional[bool] = None
    type: str = "track"

    @property
    def artist_names(self) -> str:
        return ", ".join(a.name for a in self.artists if a.name)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Track":
        album = data.get("album") or {}
        return Track(
            id=_str(data, "id"),
            name=_str(data, "name"),
            uri=_str(data, "uri"),
            artists=tuple(SimplifiedArtist.from_dict(a) for a in (data.get("artists") or []) if isinstance(a, dict)),
            album_name=_str(album, "name") if isinstance(album, dict) else "",
            duration_ms=int(data.get("duration_ms") or 0),
            popularity=int(data.get("popularity") or 0),
            track_number=int(data.get("track_number") or 0),
            is_playable=data.get("is_playable"),
        )


@dataclass(frozen=True)
class Episode:
    id: str
    name: str
    uri: str = ""
    show_name: str = ""
    duration_ms: int = 0
    type: str = "episode"

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Episode":
        show = data.get("show") or {}
        return Episode(
            id=_str(data, "id"),
            name=_str(data, "name"),
            uri=_str(data, "uri"),
            show_name=_str(show, "name") if isinstance(show, dict) else "",
            duration_ms=int(data.get("duration_ms") or 0),
        )


PlayableItem = Union[Track, Episode]


def playable_from_dict(data: Optional[Dict[str, Any]]) -> Optional[PlayableItem]:
    """Decode an item by its `type` discriminator; unknown kinds decode to None."""
    if not isinstance(data, dict):
        return None
    kind = data.get("type")
    if kind == "track":
        return Track.from_dict(data)
    if kind == "episode":
        return Episode.from_dict(data)
    return None


@dataclass(frozen=True)
class Device:
    name: str
    type: str
    is_active: bool
    id: Optional[str] = None
    volume_percent: Optional[int] = None
    supports_volume: bool = False
    is_restricted: bool = False

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Device":
        return Device(
            id=data.get("id"),
            name=_str(data, "name"),
            type=_str(data, "type"),
            is_active=bool(data.get("is_active")),
            volume_percent=_opt_int(data, "volume_percent"),
            supports_volume=bool(data.get("supports_volume")),
            is_restricted=bool(data.get("is_restricted")),
        )


@dataclass(frozen=True)
class PlaylistSummary:
    id: str
    name: str
    uri: str = ""
    description: str = ""
    owner: str = ""
    total_tracks: int = 0

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PlaylistSummary":
        owner = data.get("owner") or {}
        tracks = data.get("tracks") or data.get("items") or {}
        return PlaylistSummary(
            id=_str(data, "id"),
            name=_str(data, "name"),
            uri=_str(data, "uri"),
            description=_str(data, "description"),
            owner=_str(owner, "display_name") if isinstance(owner, dict) else "",
            total_tracks=int(tracks.get("total") or 0) if isinstance(tracks, dict) else 0,
        )


@dataclass(frozen=True)
class PlaylistSnapshot:
    snapshot_id: str

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PlaylistSnapshot":
        return PlaylistSnapshot(snapshot_id=_str(data, "snapshot_id"))


@dataclass(frozen=True)
class UserProfile:
    id: str
    display_name: str = ""
    email: str = ""
    country: str = ""
    product: str = ""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "UserProfile":
        return UserProfile(
            id=_str(data, "id"),
            display_name=_str(data, "display_name"),
            email=_str(data, "email"),
            country=_str(data, "country"),
            product=_str(data, "product"),
        )


@dataclass(frozen=True)
class Page(Generic[T]):
    items: Tuple[T, ...] = ()
    total: int = 0
    limit: int = 0
    offset: int = 0
    next: Optional[str] = None

    @staticmethod
    def from_dict(data: Dict[str, Any], item: Callable[[Dict[str, Any]], Optional[T]]) -> "Page[T]":
        decoded = []
        for raw in data.get("items") or []:
            if not isinstance(raw, dict):
                continue
            value = item(raw)
            if value is not None:
                decoded.append(value)
        return Page(
            items=tuple(decoded),
            total=int(data.get("total") or 0),
            limit=int(data.get("limit") or 0),
            offset=int(data.get("offset") or 0),
            next=data.get("next"),
        )


def playlist_item_from_dict(data: Dict[str, Any]) -> Optional[PlayableItem]:
    # Playlist rows wrap the playable under "track" (which may be an episode).
    return playable_from_dict(data.get("track"))


@dataclass(frozen=True)
class PlayHistory:
    track: Track
    played_at: str = ""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Optional["PlayHistory"]:
        track = data.get("track")
        if not isinstance(track, dict):
            return None
        return PlayHistory(track=Track.from_dict(track), played_at=_str(data, "played_at"))


@dataclass(frozen=True)
class CurrentlyPlaying:
    is_playing: bool
    progress_ms: Optional[int] = None
    timestamp: int = 0
    currently_playing_type: str = ""
    item: Optional[PlayableItem] = None
    context_uri: Optional[str] = None

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CurrentlyPlaying":
        context = data.get("context")
        return CurrentlyPlaying(
            is_playing=bool(data.get("is_playing")),
            progress_ms=_opt_int(data, "progress_ms"),
            timestamp=int(data.get("timestamp") or 0),
            currently_playing_type=_str(data, "currently_playing_type"),
            item=playable_from_dict(data.get("item")),
            context_uri=context.get("uri") if isinstance(context, dict) else None,
        )


@dataclass(frozen=True)
class PlaybackState:
    device: Device
    is_playing: bool
    shuffle_state: bool = False
    repeat_state: str = "off"
    progress_ms: Optional[int] = None
    item: Optional[PlayableItem] = None

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PlaybackState":
        return PlaybackState(
            device=Device.from_dict(data.get("device") or {}),
            is_playing=bool(data.get("is_playing")),
            shuffle_state=bool(data.get("shuffle_state")),
            repeat_state=_str(data, "repeat_state") or "off",
            progress_ms=_opt_int(data, "progress_ms"),
            item=playable_from_dict(data.get("item")),
        )


@dataclass(frozen=True)
class UsersQueue:
    currently_playing: Optional[PlayableItem] = None
    queue: Tuple[PlayableItem, ...] = field(default_factory=tuple)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "UsersQueue":
        items: List[PlayableItem] = []
        for raw in data.get("queue") or []:
            item = playable_from_dict(raw)
            if item is not None:
                items.append(item)
        return UsersQueue(currently_playing=playable_from_dict(data.get("currently_playing")), queue=tuple(items))


@dataclass(frozen=True)
class SearchResult:
    artists: Tuple[Artist, ...] = ()
    tracks: Tuple[Track, ...] = ()
    playlists: Tuple[PlaylistSummary, ...] = ()

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SearchResult":
        def section(key: str, decode):
            block = data.get(key) or {}
            return tuple(decode(x) for x in (block.get("items") or []) if isinstance(x, dict))

        return SearchResult(
            artists=section("artists", Artist.from_dict),
            tracks=section("tracks", Track.from_dict),
            playlists=section("playlists", PlaylistSummary.from_dict),
        )
