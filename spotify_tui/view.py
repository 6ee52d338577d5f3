from typing import List

from .grid import MEDIA, TEXT, Pane
from .items import render_label
from .state import AppState

MAX_PANE_LINES = 8


def _profile_lines(state: AppState) -> List[str]:
    if state.profile is None:
        return ["loading profile..."]
    p = state.profile
    name = p.display_name or p.id
    return [f"{name} ({p.product})" if p.product else name]


def _media_lines(state: AppState) -> List[str]:
    cp = state.currently_playing
    if cp is None or cp.item is None:
        return ["nothing playing"]
    status = "playing" if cp.is_playing else "paused"
    device = f" on {state.active_device.name}" if state.active_device else ""
    media = state.grid.pane("media").items
    lines = [f"[{status}{device}] {render_label(media[0])}" if media else f"[{status}{device}]"]
    if cp.progress_ms is not None and getattr(cp.item, "duration_ms", 0):
        lines.append(f"{_clock(cp.progress_ms)} / {_clock(cp.item.duration_ms)}")
    return lines


def _clock(ms: int) -> str:
    seconds = max(int(ms), 0) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def _pane_lines(state: AppState, pane: Pane, focused: bool) -> List[str]:
    if pane.name == "profile":
        return _profile_lines(state)
    if pane.kind == MEDIA:
        return _media_lines(state)
    if pane.kind == TEXT:
        return state.msgs[-MAX_PANE_LINES:] or ["-"]

    if not pane.items:
        return ["-"]
    start = max(0, min(pane.cursor - MAX_PANE_LINES // 2, len(pane.items) - MAX_PANE_LINES))
    lines = []
    for i, item in enumerate(pane.items[start : start + MAX_PANE_LINES], start=start):
        marker = ">" if focused and i == pane.cursor else " "
        lines.append(f"{marker} {render_label(item)}")
    return lines


def render_state(state: AppState) -> str:
    """Render the visible state as plain text."""
    grid = state.grid
    out: List[str] = []
    for i, row in enumerate(grid.rows):
        for j, pane in enumerate(row):
            here = grid.cursor == (i, j)
            focused = here and grid.focus
            mark = "[*]" if focused else ("[>]" if here else "[ ]")
            out.append(f"{mark} {pane.title}")
            out.extend(f"    {line}" for line in _pane_lines(state, pane, focused))
        out.append("")

    if state.selected is not None:
        out.append(f"Selected: {render_label(state.selected)}")

    if state.errors:
        out.append("Errors:")
        out.extend(f"  ! {err}" for err in state.errors[-MAX_PANE_LINES:])

    return "\n".join(out).rstrip() + "\n"
