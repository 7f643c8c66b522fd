"""Closed vocabulary of actions flowing through the dashboard queue.

Every producer (the Textual app, timers, background unit calls, the dispatcher
itself) talks to the rest of the system only by putting one of these on the
action queue. Actions are frozen and hold plain values only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..models import Mode, NewService, UnitId, UnitWithStatus


@dataclass(frozen=True, slots=True)
class Quit:
    pass


@dataclass(frozen=True, slots=True)
class Resume:
    pass


@dataclass(frozen=True, slots=True)
class Suspend:
    pass


@dataclass(frozen=True, slots=True)
class Render:
    pass


@dataclass(frozen=True, slots=True)
class DebouncedRender:
    pass


@dataclass(frozen=True, slots=True)
class SpinnerTick:
    pass


@dataclass(frozen=True, slots=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class ToggleShowLogger:
    pass


@dataclass(frozen=True, slots=True)
class RefreshServices:
    pass


@dataclass(frozen=True, slots=True)
class SetServices:
    units: tuple[UnitWithStatus, ...]


@dataclass(frozen=True, slots=True)
class EnterMode:
    mode: Mode


@dataclass(frozen=True, slots=True)
class EnterError:
    message: str


@dataclass(frozen=True, slots=True)
class CancelTask:
    pass


@dataclass(frozen=True, slots=True)
class ToggleHelp:
    pass


@dataclass(frozen=True, slots=True)
class SetUnitFilePath:
    unit: UnitId
    path: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class CopyUnitFilePath:
    pass


@dataclass(frozen=True, slots=True)
class SetLogs:
    unit: UnitId
    lines: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class AppendLogLine:
    unit: UnitId
    line: str


@dataclass(frozen=True, slots=True)
class StartService:
    unit: UnitId


@dataclass(frozen=True, slots=True)
class StopService:
    unit: UnitId


@dataclass(frozen=True, slots=True)
class RestartService:
    unit: UnitId


@dataclass(frozen=True, slots=True)
class ReloadService:
    unit: UnitId


@dataclass(frozen=True, slots=True)
class EnableService:
    unit: UnitId


@dataclass(frozen=True, slots=True)
class DisableService:
    unit: UnitId


# add-service form edits, applied to whatever form state is current when dispatched
@dataclass(frozen=True, slots=True)
class FormInput:
    text: str


@dataclass(frozen=True, slots=True)
class FormBackspace:
    pass


@dataclass(frozen=True, slots=True)
class FormFocus:
    step: int = 1


@dataclass(frozen=True, slots=True)
class SubmitForm:
    pass


@dataclass(frozen=True, slots=True)
class AddService:
    spec: NewService


@dataclass(frozen=True, slots=True)
class ScrollUp:
    n: int = 1


@dataclass(frozen=True, slots=True)
class ScrollDown:
    n: int = 1


@dataclass(frozen=True, slots=True)
class ScrollToTop:
    pass


@dataclass(frozen=True, slots=True)
class ScrollToBottom:
    pass


@dataclass(frozen=True, slots=True)
class EditUnitFile:
    unit: UnitId
    path: str


@dataclass(frozen=True, slots=True)
class Noop:
    pass


Action = Union[
    Quit,
    Resume,
    Suspend,
    Render,
    DebouncedRender,
    SpinnerTick,
    Resize,
    ToggleShowLogger,
    RefreshServices,
    SetServices,
    EnterMode,
    EnterError,
    CancelTask,
    ToggleHelp,
    SetUnitFilePath,
    CopyUnitFilePath,
    SetLogs,
    AppendLogLine,
    StartService,
    StopService,
    RestartService,
    ReloadService,
    EnableService,
    DisableService,
    FormInput,
    FormBackspace,
    FormFocus,
    SubmitForm,
    AddService,
    ScrollUp,
    ScrollDown,
    ScrollToTop,
    ScrollToBottom,
    EditUnitFile,
    Noop,
]

# Unit state changes and the systemd verb each one maps to.
UNIT_VERBS: dict[type, str] = {
    StartService: "start",
    StopService: "stop",
    RestartService: "restart",
    ReloadService: "reload",
    EnableService: "enable",
    DisableService: "disable",
}


def describe(action: Action) -> str:
    """Short log form of an action; bulky payloads are reduced to their tag."""
    if isinstance(action, SetServices):
        return f"SetServices({len(action.units)} units)"
    if isinstance(action, SetLogs):
        return f"SetLogs({action.unit}, {len(action.lines)} lines)"
    return repr(action)
