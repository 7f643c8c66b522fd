"""Shared fakes for the dashboard runtime tests.

The fakes stand in for systemd (D-Bus + journal) and the Textual app so the
dispatch loop can be driven by plain action sequences.
"""

import asyncio
from contextlib import contextmanager
from dataclasses import replace

import pytest
from textual.app import SuspendNotSupported

from unitdash.models import Scope, UnitId, UnitWithStatus
from unitdash.systemd_bus import ServiceDirectoryError


def make_unit(name: str, active: str = "inactive", sub: str = "dead", **kw) -> UnitWithStatus:
    return UnitWithStatus(name=name, scope=Scope.SYSTEM, active_state=active, sub_state=sub, **kw)


class FakeDirectory:
    def __init__(self, units=(), scope: Scope = Scope.SYSTEM):
        self.scope = scope
        self.units = {u.name: u for u in units}
        self.calls: list[tuple] = []
        self.fail: dict[str, str] = {}
        self.paths: dict[str, str] = {}
        self.logs: dict[str, list[str]] = {}
        self.follow: dict[str, list[str]] = {}
        self.follow_closed: list[str] = []
        self.follow_cursors: list[str | None] = []

    async def list_units(self):
        self.calls.append(("list",))
        if "list" in self.fail:
            raise ServiceDirectoryError(self.fail["list"])
        return sorted(self.units.values(), key=lambda u: u.name)

    async def set_unit_state(self, unit: UnitId, verb: str):
        self.calls.append((verb, unit.name))
        if verb in self.fail:
            raise ServiceDirectoryError(f"Failed to {verb} {unit.name}: {self.fail[verb]}")
        current = self.units.get(unit.name) or make_unit(unit.name)
        if verb in {"start", "restart", "reload"}:
            current = replace(current, active_state="active", sub_state="running")
        elif verb == "stop":
            current = replace(current, active_state="inactive", sub_state="dead")
        elif verb == "enable":
            current = replace(current, enablement_state="enabled")
        elif verb == "disable":
            current = replace(current, enablement_state="disabled")
        self.units[unit.name] = current

    async def daemon_reload(self):
        self.calls.append(("daemon-reload",))
        if "daemon-reload" in self.fail:
            raise ServiceDirectoryError(self.fail["daemon-reload"])

    async def get_unit_file_path(self, unit: UnitId) -> str:
        self.calls.append(("path", unit.name))
        if unit.name not in self.paths:
            raise ServiceDirectoryError(f"{unit.name} has no unit file")
        return self.paths[unit.name]

    async def read_logs(self, unit: UnitId, lines: int = 500):
        self.calls.append(("logs", unit.name))
        if "logs" in self.fail:
            raise ServiceDirectoryError(self.fail["logs"])
        return list(self.logs.get(unit.name, [])), f"cursor-{unit.name}"

    async def follow_logs(self, unit: UnitId, cancel: asyncio.Event, after_cursor: str | None = None):
        self.follow_cursors.append(after_cursor)
        try:
            for line in self.follow.get(unit.name, []):
                yield line
            await cancel.wait()
        finally:
            self.follow_closed.append(unit.name)


class FakeTerminal:
    """Records what the lifecycle asks of the Textual app."""

    instances: list["FakeTerminal"] = []
    can_suspend = True

    def __init__(self, home, actions):
        self.home = home
        self.actions = actions
        self.mounted = asyncio.Event()
        self._done = asyncio.Event()
        self.run_kwargs = None
        self.paints: list = []
        self.suspends = 0
        self.resumes = 0
        self.process_suspends = 0
        self.exited = False
        FakeTerminal.instances.append(self)

    async def run_async(self, **kwargs):
        self.run_kwargs = kwargs
        self.mounted.set()
        await self._done.wait()

    def paint(self, size=None):
        self.paints.append(size)

    @contextmanager
    def suspend(self):
        if not self.can_suspend:
            raise SuspendNotSupported("App.suspend is not supported in this environment.")
        self.suspends += 1
        yield
        self.resumes += 1

    def action_suspend_process(self):
        self.process_suspends += 1

    def exit(self):
        self.exited = True
        self._done.set()


@pytest.fixture(autouse=True)
def _reset_fakes():
    FakeTerminal.instances = []
    yield


def drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


async def next_action(queue: asyncio.Queue, kind, timeout: float = 1.0):
    """Pop actions until one of type `kind` shows up."""

    async def _find():
        while True:
            action = await queue.get()
            if isinstance(action, kind):
                return action

    return await asyncio.wait_for(_find(), timeout)
