"""View model of the dashboard and its reducer.

`Home` is created once and mutated in place, only from the dispatch loop.
Background work (unit calls, log fetching, refreshes) runs in tasks that
report back exclusively by putting actions on the queue.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing, suppress
from typing import Callable, Coroutine, Iterable

from ..models import Mode, ModeKind, UnitId, UnitWithStatus
from ..systemd_bus import ServiceDirectoryError
from ..util import copy_text_to_clipboard
from .action import (
    UNIT_VERBS,
    Action,
    AddService,
    AppendLogLine,
    CancelTask,
    CopyUnitFilePath,
    DebouncedRender,
    DisableService,
    EditUnitFile,
    EnableService,
    EnterError,
    EnterMode,
    FormBackspace,
    FormFocus,
    FormInput,
    Noop,
    Quit,
    RefreshServices,
    ReloadService,
    Render,
    Resize,
    RestartService,
    Resume,
    ScrollDown,
    ScrollToBottom,
    ScrollToTop,
    ScrollUp,
    SetLogs,
    SetServices,
    SetUnitFilePath,
    SpinnerTick,
    StartService,
    StopService,
    SubmitForm,
    Suspend,
    ToggleHelp,
    ToggleShowLogger,
)


logger = logging.getLogger(__name__)

SPINNER_INTERVAL = 0.1


class Home:
    def __init__(self, directory, clipboard: Callable[[str], bool] = copy_text_to_clipboard) -> None:
        self.directory = directory
        self.clipboard = clipboard
        self.mode: Mode = Mode.service_list()
        self.units: list[UnitWithStatus] = []
        self.selected = 0
        self.log_offset = 0
        self.logs: dict[UnitId, list[str]] = {}
        self.unit_file_paths: dict[UnitId, str] = {}
        self.unit_file_errors: dict[UnitId, str] = {}
        self.show_help = False
        self.show_logger = False
        self.spinner_frame = 0
        # the single background task that CancelTask can stop (log follower)
        self.cancel_token: asyncio.Event | None = None
        self._actions: asyncio.Queue[Action] | None = None
        self._tasks: set[asyncio.Task] = set()
        self._path_requests: set[UnitId] = set()

    def init(self, actions: asyncio.Queue[Action]) -> None:
        self._actions = actions

    # -- queries used by the keymap and the renderer --------------------------

    def selected_unit(self) -> UnitWithStatus | None:
        if 0 <= self.selected < len(self.units):
            return self.units[self.selected]
        return None

    def focused_unit_id(self) -> UnitId | None:
        if self.mode.unit is not None:
            return self.mode.unit
        unit = self.selected_unit()
        return unit.id if unit else None

    def unit_file_path(self, unit: UnitId) -> str | None:
        path = self.unit_file_paths.get(unit)
        if path:
            return path
        for u in self.units:
            if u.id == unit:
                return u.file_path
        return None

    def current_logs(self) -> list[str]:
        if self.mode.kind is ModeKind.LOGS and self.mode.unit is not None:
            return self.logs.get(self.mode.unit, [])
        return []

    def max_offset(self) -> int | None:
        """Upper bound of the scroll offset in the current mode, None when not scrollable."""
        if self.mode.kind is ModeKind.SERVICE_LIST:
            return max(0, len(self.units) - 1)
        if self.mode.kind is ModeKind.LOGS:
            return max(0, len(self.current_logs()) - 1)
        return None

    def busy(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # -- state changes outside dispatch (startup only) ------------------------

    def set_units(self, units: Iterable[UnitWithStatus]) -> None:
        current = self.selected_unit()
        self.units = list(units)
        if current is not None:
            for idx, unit in enumerate(self.units):
                if unit.id == current.id:
                    self.selected = idx
                    break
        self.selected = min(self.selected, max(0, len(self.units) - 1))

    # -- reducer ---------------------------------------------------------------

    def dispatch(self, action: Action) -> Action | None:
        """Apply one action; returns an optional follow-up action to enqueue."""
        match action:
            case SetServices(units):
                self.set_units(units)
                return DebouncedRender()
            case SetLogs(unit, lines):
                self.logs[unit] = list(lines)
                if self._viewing_logs_of(unit):
                    self.log_offset = max(0, len(lines) - 1)
                return DebouncedRender()
            case AppendLogLine(unit, line):
                buf = self.logs.setdefault(unit, [])
                at_bottom = self.log_offset >= len(buf) - 1
                buf.append(line)
                if self._viewing_logs_of(unit) and at_bottom:
                    self.log_offset = len(buf) - 1
                return DebouncedRender()
            case EnterMode(mode):
                self._enter_mode(mode)
                return DebouncedRender()
            case EnterError(message):
                logger.error("%s", message)
                self._enter_mode(Mode.error(message))
                return DebouncedRender()
            case (
                StartService(unit)
                | StopService(unit)
                | RestartService(unit)
                | ReloadService(unit)
                | EnableService(unit)
                | DisableService(unit)
            ):
                verb = UNIT_VERBS[type(action)]
                self.mode = Mode.processing(unit, verb)
                self.spawn(self._change_unit_state(unit, verb))
                return DebouncedRender()
            case RefreshServices():
                self.spawn(self._refresh())
                return None
            case ScrollUp(n):
                self._scroll_to(self._offset() - max(0, n))
                return DebouncedRender()
            case ScrollDown(n):
                self._scroll_to(self._offset() + max(0, n))
                return DebouncedRender()
            case ScrollToTop():
                self._scroll_to(0)
                return DebouncedRender()
            case ScrollToBottom():
                bound = self.max_offset()
                if bound is not None:
                    self._scroll_to(bound)
                return DebouncedRender()
            case FormInput() | FormBackspace() | FormFocus() | SubmitForm():
                if self.mode.kind is not ModeKind.ADD_SERVICE:
                    return None
                return self._edit_form(action)
            case CancelTask():
                self.cancel_task()
                return DebouncedRender()
            case ToggleHelp():
                self.show_help = not self.show_help
                return DebouncedRender()
            case ToggleShowLogger():
                self.show_logger = not self.show_logger
                return DebouncedRender()
            case SetUnitFilePath(unit, path, error):
                self._path_requests.discard(unit)
                if path:
                    self.unit_file_paths[unit] = path
                    self.unit_file_errors.pop(unit, None)
                else:
                    self.unit_file_errors[unit] = error or "unknown error"
                return DebouncedRender()
            case CopyUnitFilePath():
                return self._copy_unit_file_path()
            case SpinnerTick():
                self.spinner_frame += 1
                return DebouncedRender()
            case (
                Quit()
                | Resume()
                | Suspend()
                | Render()
                | DebouncedRender()
                | Resize()
                | EditUnitFile()
                | AddService()
                | Noop()
            ):
                # terminal lifecycle; the dispatcher handles these before the reducer
                return None
            case _:
                raise TypeError(f"not an action: {action!r}")

    # -- helpers ---------------------------------------------------------------

    def _viewing_logs_of(self, unit: UnitId) -> bool:
        return self.mode.kind is ModeKind.LOGS and self.mode.unit == unit

    def _offset(self) -> int:
        if self.mode.kind is ModeKind.LOGS:
            return self.log_offset
        return self.selected

    def _scroll_to(self, value: int) -> None:
        bound = self.max_offset()
        if bound is None:
            return
        value = min(max(0, value), bound)
        if self.mode.kind is ModeKind.LOGS:
            self.log_offset = value
            return
        if value != self.selected:
            self.selected = value
            unit = self.selected_unit()
            if unit is not None:
                self.request_unit_file_path(unit.id)

    def _enter_mode(self, mode: Mode) -> None:
        previous = self.mode
        same_logs = previous.kind is ModeKind.LOGS and mode.kind is ModeKind.LOGS and previous.unit == mode.unit
        if previous.kind is ModeKind.LOGS and not same_logs:
            self.cancel_task()
        self.mode = mode
        if mode.kind is ModeKind.LOGS and mode.unit is not None and not same_logs:
            self.log_offset = max(0, len(self.logs.get(mode.unit, [])) - 1)
            token = asyncio.Event()
            self.cancel_token = token
            self.spawn(self._load_logs(mode.unit, token))
            self.request_unit_file_path(mode.unit)

    def _edit_form(self, action: Action) -> Action:
        mode = self.mode
        match action:
            case FormInput(text):
                self.mode = mode.typed(text)
            case FormBackspace():
                self.mode = mode.backspaced()
            case FormFocus(step):
                self.mode = mode.focus_moved(step)
            case SubmitForm():
                spec = mode.to_new_service()
                if spec is None:
                    self.mode = mode.focus_moved(1, wrap=False)
                else:
                    self.mode = Mode.service_list()
                    return AddService(spec)
        return DebouncedRender()

    def cancel_task(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.set()
            self.cancel_token = None

    def _copy_unit_file_path(self) -> Action:
        unit = self.focused_unit_id()
        if unit is None:
            return Noop()
        path = self.unit_file_path(unit)
        if not path:
            return EnterError(f"Unit file path of {unit.name} is not known")
        if not self.clipboard(path):
            return EnterError("Failed to copy to clipboard (install wl-copy, xclip or xsel)")
        logger.info("copied %s to clipboard", path)
        return DebouncedRender()

    def send(self, action: Action) -> None:
        if self._actions is None:
            raise RuntimeError("Home.init() has not been called")
        self._actions.put_nowait(action)

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def shutdown(self) -> None:
        """Cancel every background task; used when the dashboard exits."""
        self.cancel_task()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    def request_unit_file_path(self, unit: UnitId) -> None:
        if unit in self.unit_file_paths or unit in self._path_requests:
            return
        self._path_requests.add(unit)
        self.spawn(self._fetch_unit_file_path(unit))

    # -- background tasks ------------------------------------------------------

    async def _refresh(self) -> None:
        try:
            units = await self.directory.list_units()
        except ServiceDirectoryError as e:
            self.send(EnterError(str(e)))
            return
        self.send(SetServices(tuple(units)))

    async def _change_unit_state(self, unit: UnitId, verb: str) -> None:
        spinner = asyncio.create_task(self._spin())
        try:
            await self.directory.set_unit_state(unit, verb)
        except ServiceDirectoryError as e:
            self.send(EnterError(str(e)))
            return
        finally:
            spinner.cancel()
        logger.info("%s %s: done", verb, unit.name)
        self.send(EnterMode(Mode.service_list()))
        self.send(RefreshServices())

    async def _spin(self) -> None:
        while True:
            await asyncio.sleep(SPINNER_INTERVAL)
            self.send(SpinnerTick())

    async def _fetch_unit_file_path(self, unit: UnitId) -> None:
        try:
            path = await self.directory.get_unit_file_path(unit)
        except ServiceDirectoryError as e:
            self.send(SetUnitFilePath(unit, error=str(e)))
            return
        self.send(SetUnitFilePath(unit, path=path))

    async def _load_logs(self, unit: UnitId, cancel: asyncio.Event) -> None:
        try:
            lines, cursor = await self.directory.read_logs(unit)
        except ServiceDirectoryError as e:
            if not cancel.is_set():
                self.send(EnterError(str(e)))
            return
        if cancel.is_set():
            return
        self.send(SetLogs(unit, tuple(lines)))
        try:
            async with aclosing(self.directory.follow_logs(unit, cancel, after_cursor=cursor)) as lines_iter:
                async for line in lines_iter:
                    if cancel.is_set():
                        break
                    self.send(AppendLogLine(unit, line))
        except ServiceDirectoryError as e:
            logger.warning("stopped following logs of %s: %s", unit.name, e)
