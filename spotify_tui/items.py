"""Items shown inside panes.

A closed set of variants; `render_label` is the only place that knows how
each one is displayed.
"""

from dataclasses import dataclass
from typing import Optional, Union

from spotify_api.models import Artist, Device, Episode, PlaylistSummary, Track


@dataclass(frozen=True)
class ArtistItem:
    artist: Artist


@dataclass(frozen=True)
class TrackItem:
    track: Track


@dataclass(frozen=True)
class PlaylistItem:
    playlist: PlaylistSummary


@dataclass(frozen=True)
class DeviceItem:
    device: Device


@dataclass(frozen=True)
class EpisodeItem:
    episode: Episode


SpotifyItem = Union[ArtistItem, TrackItem, PlaylistItem, DeviceItem, EpisodeItem]


def item_from_playable(playable: Union[Track, Episode]) -> SpotifyItem:
    if isinstance(playable, Episode):
        return EpisodeItem(playable)
    return TrackItem(playable)


def render_label(item: SpotifyItem) -> str:
    if isinstance(item, ArtistItem):
        return item.artist.name
    if isinstance(item, TrackItem):
        artists = item.track.artist_names
        return f"{item.track.name} - {artists}" if artists else item.track.name
    if isinstance(item, PlaylistItem):
        return item.playlist.name
    if isinstance(item, DeviceItem):
        marker = "* " if item.device.is_active else ""
        return f"{marker}{item.device.name} ({item.device.type})"
    if isinstance(item, EpisodeItem):
        show = item.episode.show_name
        return f"{item.episode.name} - {show}" if show else item.episode.name
    raise TypeError(f"unknown item type: {type(item).__name__}")


def item_uri(item: SpotifyItem) -> Optional[str]:
    """The playable/queueable uri of an item, if it has one."""
    if isinstance(item, TrackItem):
        return item.track.uri or None
    if isinstance(item, EpisodeItem):
        return item.episode.uri or None
    if isinstance(item, ArtistItem):
        return item.artist.uri or None
    if isinstance(item, PlaylistItem):
        return item.playlist.uri or None
    return None
