"""Editor brackets (edit unit file, add service), suspend and the app task."""

import asyncio
import shlex

import pytest

from conftest import FakeDirectory, FakeTerminal, drain, make_unit, next_action
from unitdash.dash import lifecycle as lifecycle_mod
from unitdash.dash.action import EnterError, EnterMode, Quit, RefreshServices, ReloadService, Render, Resume
from unitdash.dash.home import Home
from unitdash.dash.lifecycle import Lifecycle
from unitdash.models import Mode, NewService, Scope, UnitId
from unitdash.util import render_unit_file


APPEND_EDITOR = "sh -c " + shlex.quote('echo "Environment=CHANGED=1" >> "$0"')


@pytest.fixture
async def make_lifecycle(tmp_path):
    started = []

    async def make(editor="true", directory=None):
        directory = directory or FakeDirectory([make_unit("web.service")])
        home = Home(directory)
        actions: asyncio.Queue = asyncio.Queue()
        home.init(actions)
        lc = Lifecycle(
            home,
            actions,
            directory,
            editor=editor,
            unit_dir=tmp_path / "units",
            scope=Scope.SYSTEM,
            terminal_factory=FakeTerminal,
            headless=True,
        )
        lc.start()
        started.append(lc)
        assert await lc.wait_ready()
        return lc, actions, directory

    yield make
    for lc in started:
        await lc.shutdown()


def _assert_terminal_restored(lc):
    assert lc.terminal.suspends == 1
    assert lc.terminal.resumes == 1
    assert len(FakeTerminal.instances) == 1


async def test_edit_without_changes_does_not_reload(tmp_path, make_lifecycle):
    unit_file = tmp_path / "web.service"
    unit_file.write_text("[Service]\nExecStart=/bin/true\n")
    lc, actions, _ = await make_lifecycle(editor="true")

    await lc.edit_unit_file(UnitId("web.service"), str(unit_file))

    assert drain(actions) == [EnterMode(Mode.service_list())]
    _assert_terminal_restored(lc)


async def test_edit_with_changes_reloads_once(tmp_path, make_lifecycle):
    unit_file = tmp_path / "web.service"
    unit_file.write_text("[Service]\nExecStart=/bin/true\n")
    lc, actions, _ = await make_lifecycle(editor=APPEND_EDITOR)
    unit = UnitId("web.service")

    await lc.edit_unit_file(unit, str(unit_file))

    assert drain(actions) == [ReloadService(unit), EnterMode(Mode.service_list())]
    assert "CHANGED=1" in unit_file.read_text()
    _assert_terminal_restored(lc)


async def test_edit_unreadable_file_is_treated_as_empty(tmp_path, make_lifecycle):
    lc, actions, _ = await make_lifecycle(editor="true")

    await lc.edit_unit_file(UnitId("web.service"), str(tmp_path / "missing.service"))

    assert drain(actions) == [EnterMode(Mode.service_list())]


async def test_editor_launch_failure_reports_error(tmp_path, make_lifecycle):
    unit_file = tmp_path / "web.service"
    unit_file.write_text("x")
    lc, actions, _ = await make_lifecycle(editor=str(tmp_path / "no-such-editor"))

    await lc.edit_unit_file(UnitId("web.service"), str(unit_file))

    (action,) = drain(actions)
    assert isinstance(action, EnterError)
    assert "Failed to open editor" in action.message
    _assert_terminal_restored(lc)


async def test_add_service_writes_enables_and_starts(tmp_path, make_lifecycle):
    lc, actions, directory = await make_lifecycle(editor="true")
    spec = NewService(name="api", exec_start="/usr/bin/api --port 80", description="API server")

    await lc.add_service(spec)

    path = tmp_path / "units" / "api.service"
    assert path.read_text() == render_unit_file(spec)
    assert drain(actions) == [RefreshServices()]
    assert directory.calls == [("enable", "api.service"), ("daemon-reload",), ("start", "api.service")]
    _assert_terminal_restored(lc)


async def test_add_service_backs_up_existing_file(tmp_path, make_lifecycle):
    units = tmp_path / "units"
    units.mkdir()
    (units / "api.service").write_text("original\n")
    lc, actions, _ = await make_lifecycle(editor="true")

    await lc.add_service(NewService(name="api", exec_start="/usr/bin/api"))

    assert (units / "api.service.bak").read_text() == "original\n"
    assert (units / "api.service").read_text() != "original\n"
    assert drain(actions) == [RefreshServices()]


async def test_add_service_backup_failure_leaves_original(tmp_path, make_lifecycle, monkeypatch):
    units = tmp_path / "units"
    units.mkdir()
    original = units / "api.service"
    original.write_bytes(b"[Unit]\nDescription=keep me\n")

    def broken_copy(src, dst, *args, **kwargs):
        raise PermissionError("read-only file system")

    monkeypatch.setattr(lifecycle_mod.shutil, "copy2", broken_copy)
    lc, actions, directory = await make_lifecycle(editor="true")

    await lc.add_service(NewService(name="api", exec_start="/usr/bin/api"))

    assert original.read_bytes() == b"[Unit]\nDescription=keep me\n"
    (action,) = drain(actions)
    assert isinstance(action, EnterError)
    assert "bak" in action.message
    assert directory.calls == []
    _assert_terminal_restored(lc)


async def test_add_service_enable_failure_keeps_written_file(tmp_path, make_lifecycle):
    directory = FakeDirectory()
    directory.fail["enable"] = "no permission"
    lc, actions, _ = await make_lifecycle(editor="true", directory=directory)

    await lc.add_service(NewService(name="api", exec_start="/usr/bin/api"))

    assert (tmp_path / "units" / "api.service").exists()
    (action,) = drain(actions)
    assert isinstance(action, EnterError)
    assert "Failed to enable service `api`" in action.message
    assert ("start", "api.service") not in directory.calls
    _assert_terminal_restored(lc)


async def test_add_service_start_failure_reports_error(tmp_path, make_lifecycle):
    directory = FakeDirectory()
    directory.fail["start"] = "exec failed"
    lc, actions, _ = await make_lifecycle(editor="true", directory=directory)

    await lc.add_service(NewService(name="api", exec_start="/usr/bin/api"))

    (action,) = drain(actions)
    assert isinstance(action, EnterError)
    assert "Failed to start service `api`" in action.message


async def test_add_service_editor_failure_reports_error(tmp_path, make_lifecycle):
    lc, actions, directory = await make_lifecycle(editor=str(tmp_path / "no-such-editor"))

    await lc.add_service(NewService(name="api", exec_start="/usr/bin/api"))

    (action,) = drain(actions)
    assert isinstance(action, EnterError)
    assert ("daemon-reload",) not in directory.calls


async def test_add_service_write_failure_stops_before_systemd(tmp_path, make_lifecycle):
    # a regular file where the unit directory should be
    (tmp_path / "units").write_text("not a directory\n")
    lc, actions, directory = await make_lifecycle(editor="true")

    await lc.add_service(NewService(name="api", exec_start="/usr/bin/api"))

    (action,) = drain(actions)
    assert isinstance(action, EnterError)
    assert "Failed to create unit file" in action.message
    assert directory.calls == []
    _assert_terminal_restored(lc)


async def test_editor_brackets_report_unsupported_suspend(tmp_path, make_lifecycle, monkeypatch):
    monkeypatch.setattr(FakeTerminal, "can_suspend", False)
    unit_file = tmp_path / "web.service"
    unit_file.write_text("x")
    lc, actions, directory = await make_lifecycle(editor=APPEND_EDITOR)

    await lc.edit_unit_file(UnitId("web.service"), str(unit_file))
    await lc.add_service(NewService(name="api", exec_start="/usr/bin/api"))

    first, second = drain(actions)
    assert isinstance(first, EnterError) and isinstance(second, EnterError)
    assert "Cannot hand the terminal to the editor" in first.message
    assert unit_file.read_text() == "x"
    assert not (tmp_path / "units" / "api.service").exists()
    assert directory.calls == []


async def test_suspend_stops_the_process_and_queues_resume(tmp_path, make_lifecycle):
    lc, actions, _ = await make_lifecycle()

    await lc.suspend()

    assert lc.terminal.process_suspends == 1
    assert len(FakeTerminal.instances) == 1
    assert drain(actions) == [Resume(), Render()]


async def test_start_runs_app_headless_and_paints(tmp_path, make_lifecycle):
    lc, _, _ = await make_lifecycle()

    await lc.render()
    await lc.render((120, 40))

    assert lc.terminal.run_kwargs == {"headless": True}
    assert lc.terminal.paints == [None, (120, 40)]


async def test_shutdown_exits_app_without_queueing_quit(tmp_path, make_lifecycle):
    lc, actions, _ = await make_lifecycle()

    await lc.shutdown()

    assert lc.terminal.exited
    assert drain(actions) == []


async def test_app_exiting_on_its_own_queues_quit(tmp_path, make_lifecycle):
    lc, actions, _ = await make_lifecycle()

    lc.terminal.exit()

    assert await next_action(actions, Quit) == Quit()


class _NeverMounts(FakeTerminal):
    async def run_async(self, **kwargs):
        self.run_kwargs = kwargs


async def test_wait_ready_is_false_when_app_exits_before_mount(tmp_path):
    directory = FakeDirectory()
    home = Home(directory)
    actions: asyncio.Queue = asyncio.Queue()
    home.init(actions)
    lc = Lifecycle(
        home,
        actions,
        directory,
        editor="true",
        unit_dir=tmp_path,
        scope=Scope.SYSTEM,
        terminal_factory=_NeverMounts,
    )
    lc.start()

    assert not await lc.wait_ready()
    assert await next_action(actions, Quit) == Quit()
    await lc.shutdown()


def test_read_unit_file_missing_returns_empty(tmp_path):
    assert lifecycle_mod.read_unit_file(tmp_path / "nope") == ""


@pytest.mark.parametrize("name", ["api", "api.service"])
async def test_add_service_accepts_name_with_or_without_suffix(tmp_path, make_lifecycle, name):
    lc, _, _ = await make_lifecycle(editor="true")
    await lc.add_service(NewService(name=name, exec_start="/bin/true"))
    assert (tmp_path / "units" / "api.service").exists()
