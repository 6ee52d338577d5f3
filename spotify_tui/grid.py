"""Pane grid view-model: a 2-D arrangement of panes with one cursor.

When the grid is unfocused, direction keys move the cursor between panes.
When focused, input goes to the pane under the cursor.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .items import SpotifyItem

LIST = "list"
TABLE = "table"
MEDIA = "media"
TEXT = "text"

FOCUSABLE_KINDS = (LIST, TABLE, MEDIA)

DIRECTIONS = {
    "h": (0, -1),
    "left": (0, -1),
    "l": (0, 1),
    "right": (0, 1),
    "k": (-1, 0),
    "up": (-1, 0),
    "j": (1, 0),
    "down": (1, 0),
}

Position = Tuple[int, int]


@dataclass
class Pane:
    name: str
    title: str
    kind: str = LIST
    read_only: bool = False
    items: List[SpotifyItem] = field(default_factory=list)
    cursor: int = 0

    @property
    def focusable(self) -> bool:
        return not self.read_only and self.kind in FOCUSABLE_KINDS

    def set_items(self, items: Sequence[SpotifyItem]) -> None:
        self.items = list(items)
        self.cursor = min(self.cursor, max(len(self.items) - 1, 0))

    def move(self, delta: int) -> None:
        if not self.items:
            self.cursor = 0
            return
        self.cursor = min(max(self.cursor + delta, 0), len(self.items) - 1)

    def selected(self) -> Optional[SpotifyItem]:
        if not self.items:
            return None
        return self.items[self.cursor]


@dataclass
class PaneGrid:
    rows: List[List[Pane]]
    cursor: Position = (0, 0)
    focus: bool = False

    def __post_init__(self):
        if not self.rows or not all(self.rows):
            raise ValueError("grid needs at least one pane in every row")

    def positions(self) -> Dict[str, Position]:
        return {pane.name: (i, j) for i, row in enumerate(self.rows) for j, pane in enumerate(row)}

    def at(self, pos: Position) -> Pane:
        return self.rows[pos[0]][pos[1]]

    def current(self) -> Pane:
        return self.at(self.cursor)

    def pane(self, name: str) -> Pane:
        for row in self.rows:
            for pane in row:
                if pane.name == name:
                    return pane
        raise KeyError(name)

    def set_items(self, name: str, items: Sequence[SpotifyItem]) -> None:
        self.pane(name).set_items(items)

    def move(self, direction: str) -> bool:
        """Move the cursor one pane; returns False when it stays put.

        Never wraps and never leaves the grid. Read-only panes are stepped
        over; if nothing selectable lies that way the cursor does not move.
        """
        if self.focus or direction not in DIRECTIONS:
            return False
        d_row, d_col = DIRECTIONS[direction]
        row, col = self.cursor

        if d_row == 0:
            j = col + d_col
            while 0 <= j < len(self.rows[row]):
                if not self.rows[row][j].read_only:
                    self.cursor = (row, j)
                    return True
                j += d_col
            return False

        i = row + d_row
        while 0 <= i < len(self.rows):
            j = self._nearest_selectable(i, min(col, len(self.rows[i]) - 1))
            if j is not None:
                self.cursor = (i, j)
                return True
            i += d_row
        return False

    def _nearest_selectable(self, row: int, col: int) -> Optional[int]:
        panes = self.rows[row]
        for distance in range(len(panes)):
            for j in (col - distance, col + distance):
                if 0 <= j < len(panes) and not panes[j].read_only:
                    return j
        return None

    def focus_current(self) -> bool:
        if self.focus or not self.current().focusable:
            return False
        self.focus = True
        return True

    def unfocus(self) -> None:
        self.focus = False

    def move_item(self, delta: int) -> None:
        if self.focus:
            self.current().move(delta)

    def selected_item(self) -> Optional[SpotifyItem]:
        if not self.focus:
            return None
        return self.current().selected()


def default_grid() -> PaneGrid:
    rows = [
        [Pane("profile", "Spotify", kind=TEXT, read_only=True)],
        [Pane("artists", "Artists"), Pane("tracks", "Tracks"), Pane("playlists", "Playlists")],
        [Pane("playlist_items", "Items", kind=TABLE), Pane("devices", "Devices"), Pane("queue", "Queue")],
        [Pane("media", "Now Playing", kind=MEDIA), Pane("messages", "Messages", kind=TEXT, read_only=True)],
    ]
    return PaneGrid(rows=rows, cursor=(1, 0))
