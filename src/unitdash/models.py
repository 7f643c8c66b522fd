from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class Scope(str, Enum):
    SYSTEM = "system"
    USER = "user"


@dataclass(frozen=True, slots=True)
class UnitId:
    name: str
    scope: Scope = Scope.SYSTEM

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class UnitWithStatus:
    name: str
    scope: Scope
    description: str = ""
    load_state: str = "loaded"
    active_state: str = "inactive"
    sub_state: str = "dead"
    enablement_state: str | None = None
    file_path: str | None = None

    @property
    def id(self) -> UnitId:
        return UnitId(self.name, self.scope)

    @property
    def short_name(self) -> str:
        if self.name.endswith(".service"):
            return self.name[: -len(".service")]
        return self.name

    def is_active(self) -> bool:
        return self.active_state == "active"

    def is_failed(self) -> bool:
        return self.active_state == "failed"


@dataclass(frozen=True, slots=True)
class NewService:
    """What the add-service form collects before a unit file is generated."""

    name: str
    exec_start: str
    description: str | None = None
    working_dir: str | None = None


class ModeKind(str, Enum):
    SERVICE_LIST = "service_list"
    HELP = "help"
    LOGS = "logs"
    ADD_SERVICE = "add_service"
    PROCESSING = "processing"
    ERROR = "error"


# Order of the inputs on the add-service form.
FORM_FIELDS: tuple[str, ...] = ("name", "exec_start", "description", "working_dir")


@dataclass(frozen=True, slots=True)
class Mode:
    kind: ModeKind
    unit: UnitId | None = None
    message: str = ""
    # add-service form state, only meaningful for ADD_SERVICE
    draft: tuple[str, ...] = ("", "", "", "")
    focus: int = 0

    @classmethod
    def service_list(cls) -> Mode:
        return cls(ModeKind.SERVICE_LIST)

    @classmethod
    def help(cls) -> Mode:
        return cls(ModeKind.HELP)

    @classmethod
    def logs(cls, unit: UnitId) -> Mode:
        return cls(ModeKind.LOGS, unit=unit)

    @classmethod
    def add_service(cls) -> Mode:
        return cls(ModeKind.ADD_SERVICE)

    @classmethod
    def processing(cls, unit: UnitId, verb: str) -> Mode:
        return cls(ModeKind.PROCESSING, unit=unit, message=verb)

    @classmethod
    def error(cls, message: str) -> Mode:
        return cls(ModeKind.ERROR, message=message)

    def with_draft(self, draft: tuple[str, ...], field_index: int | None = None) -> Mode:
        idx = self.focus if field_index is None else field_index
        return replace(self, draft=draft, focus=idx)

    def typed(self, text: str) -> Mode:
        draft = list(self.draft)
        draft[self.focus] += text
        return replace(self, draft=tuple(draft))

    def backspaced(self) -> Mode:
        draft = list(self.draft)
        draft[self.focus] = draft[self.focus][:-1]
        return replace(self, draft=tuple(draft))

    def focus_moved(self, step: int, wrap: bool = True) -> Mode:
        idx = self.focus + step
        if wrap:
            idx %= len(FORM_FIELDS)
        else:
            idx = min(max(0, idx), len(FORM_FIELDS) - 1)
        return replace(self, focus=idx)

    def to_new_service(self) -> NewService | None:
        """Build a NewService from the form, or None when required inputs are empty."""
        name, exec_start, description, working_dir = (v.strip() for v in self.draft)
        if not name or not exec_start:
            return None
        if name.endswith(".service"):
            name = name[: -len(".service")]
        return NewService(
            name=name,
            exec_start=exec_start,
            description=description or None,
            working_dir=working_dir or None,
        )
