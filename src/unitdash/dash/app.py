"""The dispatch loop.

One consumer takes actions off the queue strictly in arrival order. Terminal
lifecycle actions are handled here; everything else goes to the view model's
reducer, whose optional follow-up action is queued behind whatever is
already waiting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from ..config import Settings
from ..systemd_bus import ServiceDirectory, ServiceDirectoryError
from .action import (
    Action,
    AddService,
    DebouncedRender,
    EditUnitFile,
    Noop,
    Quit,
    Render,
    Resize,
    Resume,
    Suspend,
    describe,
)
from .debounce import DebounceCoordinator
from .home import Home
from .lifecycle import Lifecycle
from .tui import DashTui


logger = logging.getLogger(__name__)


class StartupError(RuntimeError):
    pass


class DashApp:
    def __init__(
        self,
        settings: Settings,
        directory=None,
        *,
        terminal_factory: Callable | None = None,
        headless: bool = False,
    ) -> None:
        self.settings = settings
        self.directory = directory or ServiceDirectory(settings.scope, settings.limit_units)
        self.home = Home(self.directory)
        self.actions: asyncio.Queue[Action] = asyncio.Queue()
        self.should_quit = False
        self.should_suspend = False
        self.debouncer = DebounceCoordinator(self.actions, settings.debounce)
        if terminal_factory is None:
            def terminal_factory(home, actions):
                return DashTui(home, actions, refresh_interval=settings.refresh_interval)
        self.lifecycle = Lifecycle(
            self.home,
            self.actions,
            self.directory,
            editor=settings.editor,
            unit_dir=settings.unit_dir,
            scope=settings.scope,
            terminal_factory=terminal_factory,
            headless=headless,
        )

    async def run(self) -> None:
        self.debouncer.start()
        self.home.init(self.actions)
        try:
            units = await self.directory.list_units()
        except ServiceDirectoryError as e:
            await self.debouncer.stop()
            raise StartupError(
                f"Unable to get services. Check that systemd is running and try running this tool with sudo. ({e})"
            ) from e
        self.home.set_units(units)
        unit = self.home.selected_unit()
        if unit is not None:
            self.home.request_unit_file_path(unit.id)

        self.lifecycle.start()
        try:
            if await self.lifecycle.wait_ready():
                await self.lifecycle.render()
            await self._loop()
        finally:
            await self.lifecycle.shutdown()
            await self.home.shutdown()
            await self.debouncer.stop()

    async def _loop(self) -> None:
        while True:
            action = await self.actions.get()
            await self.handle(action)
            if self.should_suspend:
                await self.lifecycle.suspend()
                self.should_suspend = False
            elif self.should_quit:
                logger.info("quit")
                return

    async def handle(self, action: Action) -> None:
        logger.debug("action: %s", describe(action))
        match action:
            case Render():
                start = time.perf_counter()
                await self.lifecycle.render()
                logger.debug("render took %.1fms", (time.perf_counter() - start) * 1000)
            case DebouncedRender():
                self.debouncer.request()
            case Resize(width, height):
                await self.lifecycle.render((width, height))
            case EditUnitFile(unit, path):
                await self.lifecycle.edit_unit_file(unit, path)
            case AddService(spec):
                await self.lifecycle.add_service(spec)
            case Quit():
                self.should_quit = True
            case Suspend():
                self.should_suspend = True
            case Resume():
                self.should_suspend = False
            case Noop():
                pass
            case _:
                follow_up = self.home.dispatch(action)
                if follow_up is not None:
                    self.actions.put_nowait(follow_up)
