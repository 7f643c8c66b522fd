"""Terminal lifecycle: startup, suspend/resume, shutdown, and the editor brackets.

Editing a unit file and creating a new service both hand the terminal to an
external editor inside Textual's `App.suspend()`. Result actions are queued
only after the app has taken the terminal back.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Callable

from textual.app import SuspendNotSupported

from ..models import Mode, NewService, Scope, UnitId
from ..systemd_bus import ServiceDirectoryError
from ..util import editor_argv, render_unit_file, unit_name
from .action import Action, EnterError, EnterMode, Quit, RefreshServices, ReloadService, Render, Resume


logger = logging.getLogger(__name__)


def read_unit_file(path: str | Path) -> str:
    """Unit file contents, or "" when it cannot be read."""
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.error("Failed to read unit file `%s`: %s", path, e)
        return ""


class Lifecycle:
    def __init__(
        self,
        home,
        actions: asyncio.Queue[Action],
        directory,
        *,
        editor: str,
        unit_dir: Path,
        scope: Scope,
        terminal_factory: Callable,
        headless: bool = False,
    ) -> None:
        self.home = home
        self.actions = actions
        self.directory = directory
        self.editor = editor
        self.unit_dir = Path(unit_dir)
        self.scope = scope
        self.headless = headless
        self._terminal_factory = terminal_factory
        self.terminal = None
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        """Create the Textual app and run it on the current loop."""
        self.terminal = self._terminal_factory(self.home, self.actions)
        self._task = asyncio.create_task(self.terminal.run_async(headless=self.headless), name="unitdash-tui")
        self._task.add_done_callback(self._on_terminal_exit)

    def _on_terminal_exit(self, task: asyncio.Task) -> None:
        # the app went away on its own (ctrl+q, crash); stop the dispatch loop too
        self.actions.put_nowait(Quit())

    async def wait_ready(self) -> bool:
        """Wait until the app is mounted. False when it exited before that."""
        mounted = asyncio.create_task(self.terminal.mounted.wait())
        done, _ = await asyncio.wait({mounted, self._task}, return_when=asyncio.FIRST_COMPLETED)
        if mounted in done:
            return True
        mounted.cancel()
        return False

    async def render(self, size: tuple[int, int] | None = None) -> None:
        self.terminal.paint(size)

    async def suspend(self) -> None:
        # SIGTSTP; Textual restores application mode on SIGCONT
        self.terminal.action_suspend_process()
        self.actions.put_nowait(Resume())
        self.actions.put_nowait(Render())

    async def shutdown(self) -> None:
        if self._task is None:
            return
        self._task.remove_done_callback(self._on_terminal_exit)
        if not self._task.done():
            self.terminal.exit()
        await self._task

    async def run_editor(self, path: str) -> str | None:
        """Run the editor on `path` and wait for it. Returns an error message on launch failure."""
        try:
            proc = await asyncio.create_subprocess_exec(*editor_argv(self.editor, path))
        except (OSError, ValueError) as e:
            return f"Failed to open editor `{self.editor}`: {e}"
        rc = await proc.wait()
        logger.info("editor `%s` exited with %s", self.editor, rc)
        return None

    async def edit_unit_file(self, unit: UnitId, path: str) -> None:
        results: list[Action] = []
        try:
            with self.terminal.suspend():
                before = read_unit_file(path)
                error = await self.run_editor(path)
                if error is not None:
                    results.append(EnterError(error))
                else:
                    if read_unit_file(path) != before:
                        logger.info("unit file of %s changed", unit.name)
                        results.append(ReloadService(unit))
                    results.append(EnterMode(Mode.service_list()))
        except SuspendNotSupported as e:
            results = [EnterError(f"Cannot hand the terminal to the editor: {e}")]
        for action in results:
            self.actions.put_nowait(action)

    async def add_service(self, spec: NewService) -> None:
        try:
            with self.terminal.suspend():
                result = await self._create_service(spec)
        except SuspendNotSupported as e:
            result = EnterError(f"Cannot hand the terminal to the editor: {e}")
        self.actions.put_nowait(result)

    async def _create_service(self, spec: NewService) -> Action:
        name = unit_name(spec.name)
        unit = UnitId(name, self.scope)
        path = self.unit_dir / name

        if path.exists():
            bak = path.with_name(path.name + ".bak")
            try:
                shutil.copy2(path, bak)
            except OSError as e:
                logger.error("backup of %s failed: %s", path, e)
                return EnterError(f"Failed to create bak file `{bak}`: {e}")
            logger.info("backed up %s to %s", path, bak)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render_unit_file(spec), encoding="utf-8")
        except OSError as e:
            return EnterError(f"Failed to create unit file `{path}`: {e}")

        try:
            await self.directory.set_unit_state(unit, "enable")
        except ServiceDirectoryError as e:
            return EnterError(f"Failed to enable service `{spec.name}`: {e}")

        error = await self.run_editor(str(path))
        if error is not None:
            return EnterError(error)

        try:
            await self.directory.daemon_reload()
            await self.directory.set_unit_state(unit, "start")
        except ServiceDirectoryError as e:
            return EnterError(f"Failed to start service `{spec.name}`: {e}")
        logger.info("created and started %s", name)
        return RefreshServices()
