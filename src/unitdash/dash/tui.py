"""Textual front end: one full-screen widget fed by the rich view.

The app holds no state of its own. Keys, pastes and resizes become actions on
the shared queue; the dispatch loop asks it to `paint()` after the view
model changed.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable

from textual import events
from textual.app import App, ComposeResult
from textual.widgets import Static

from .action import Action, RefreshServices, Resize
from .events import actions_for_key, actions_for_paste, key_token
from .view import build_view


class DashTui(App):
    CSS_PATH = Path(__file__).with_name("tui.tcss")
    ENABLE_COMMAND_PALETTE = False

    def __init__(
        self,
        home,
        actions: asyncio.Queue[Action],
        refresh_interval: float = 0.0,
        view: Callable = build_view,
    ) -> None:
        super().__init__()
        self.home = home
        self.actions = actions
        self.refresh_interval = refresh_interval
        self.view = view
        self.mounted = asyncio.Event()

    def compose(self) -> ComposeResult:
        yield Static(id="view")

    def on_mount(self) -> None:
        if self.refresh_interval > 0:
            self.set_interval(self.refresh_interval, self._tick)
        self.mounted.set()

    def _tick(self) -> None:
        self.actions.put_nowait(RefreshServices())

    def paint(self, size: tuple[int, int] | None = None) -> None:
        # a Resize action carries the new size before the app has applied it
        width, height = size or self.size
        self.query_one("#view", Static).update(self.view(self.home, width, height))

    def on_key(self, event: events.Key) -> None:
        # every key belongs to the dashboard keymap, none to Textual's bindings
        event.prevent_default()
        event.stop()
        token = key_token(event.key, event.character)
        if token is None:
            return
        for action in actions_for_key(self.home, token):
            self.actions.put_nowait(action)

    def on_paste(self, event: events.Paste) -> None:
        event.stop()
        for action in actions_for_paste(self.home, event.text):
            self.actions.put_nowait(action)

    def on_resize(self, event: events.Resize) -> None:
        self.actions.put_nowait(Resize(event.size.width, event.size.height))
