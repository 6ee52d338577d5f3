"""textual host: feeds key presses to the runtime and redraws on every update."""

from typing import Any, Dict, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.css.query import NoMatches
from textual.widgets import Footer, Header, Static

from managers.credential_manager import CredentialStore
from utils.logger import get_logger

from .messages import KeyPress
from .reducer import Reducer
from .runtime import EffectRunner
from .state import AppState
from .view import render_state

# textual key names that differ from the ones the reducer understands
KEY_MAP = {
    "escape": "esc",
    "plus": "+",
    "minus": "-",
    "equals_sign": "=",
}


class PlayerApp(App):
    """Spotify player in the terminal."""

    CSS = """
    #screen {
        padding: 0 1;
    }
    """

    TITLE = "Spotify"
    SUB_TITLE = "Terminal Player"

    BINDINGS = [
        Binding("ctrl+c", "shutdown", "Quit", priority=True),
    ]

    def __init__(self, reducer: Reducer, state: AppState, store: CredentialStore, config: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.logger = get_logger("tui")
        self.runner = EffectRunner(reducer, state, store, on_render=self._render_state)
        self.config = config or {}

    def compose(self) -> ComposeResult:
        yield Header()
        with VerticalScroll():
            yield Static("loading...", id="screen", markup=False)
        yield Footer()

    async def on_mount(self) -> None:
        await self.runner.start()
        self.run_worker(self._drive(), exclusive=True, name="runtime")

    async def _drive(self) -> None:
        await self.runner.run()
        self.exit()

    def on_key(self, event) -> None:
        if self.runner.stopped:
            return
        key = KEY_MAP.get(event.key, event.key)
        self.runner.post(KeyPress(key))
        event.prevent_default()
        event.stop()

    def action_shutdown(self) -> None:
        if not self.runner.stopped:
            self.runner.post(KeyPress("ctrl+c"))

    async def on_unmount(self) -> None:
        await self.runner.stop()

    def _render_state(self, state: AppState) -> None:
        try:
            screen = self.query_one("#screen", Static)
        except NoMatches:
            return
        screen.update(render_state(state))
