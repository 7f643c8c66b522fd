from __future__ import annotations

import asyncio
import fnmatch
import logging
from asyncio.subprocess import DEVNULL, PIPE
from collections import OrderedDict
from contextlib import suppress
from pathlib import PurePath
from typing import Any, AsyncIterator, Iterable

from dbus_next import BusType, Variant
from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError

from .models import Scope, UnitId, UnitWithStatus


logger = logging.getLogger(__name__)

SYSTEMD_DEST = "org.freedesktop.systemd1"
SYSTEMD_PATH = "/org/freedesktop/systemd1"
IFACE_MANAGER = "org.freedesktop.systemd1.Manager"
IFACE_PROPERTIES = "org.freedesktop.DBus.Properties"
IFACE_UNIT = "org.freedesktop.systemd1.Unit"

VERBS = ("start", "stop", "restart", "reload", "enable", "disable")
DEFAULT_LOG_LINES = 500
CURSOR_PREFIX = "-- cursor: "
# job results that count as success; "skipped" is a reload of an inactive unit
JOB_OK = ("done", "skipped")
FINISHED_JOBS_KEPT = 64


class ServiceDirectoryError(RuntimeError):
    pass


async def connect_bus(scope: Scope) -> MessageBus:
    bus_type = BusType.SESSION if scope is Scope.USER else BusType.SYSTEM
    return await MessageBus(bus_type=bus_type).connect()


async def get_manager(bus: MessageBus):
    intro = await bus.introspect(SYSTEMD_DEST, SYSTEMD_PATH)
    obj = bus.get_proxy_object(SYSTEMD_DEST, SYSTEMD_PATH, intro)
    return obj.get_interface(IFACE_MANAGER)


async def list_units(mgr) -> list[dict[str, Any]]:
    rows = await mgr.call_list_units()
    result = []
    for row in rows:
        # name, description, load_state, active_state, sub_state, following, unit_path, job_id, job_type, job_path
        result.append(
            {
                "Name": row[0],
                "Description": row[1],
                "LoadState": row[2],
                "ActiveState": row[3],
                "SubState": row[4],
                "Path": row[6],
            }
        )
    return result


async def list_unit_files(mgr) -> dict[str, tuple[str, str]]:
    """Map unit name -> (file path, enablement state) for installed unit files."""
    files: dict[str, tuple[str, str]] = {}
    for path, state in await mgr.call_list_unit_files():
        files[PurePath(path).name] = (path, state)
    return files


async def get_unit_property(bus: MessageBus, unit_path: str, name: str) -> Any:
    intro = await bus.introspect(SYSTEMD_DEST, unit_path)
    obj = bus.get_proxy_object(SYSTEMD_DEST, unit_path, intro)
    props = obj.get_interface(IFACE_PROPERTIES)
    value = await props.call_get(IFACE_UNIT, name)
    if isinstance(value, Variant):
        return value.value
    return value


def unit_allowed(name: str, limit_units: Iterable[str]) -> bool:
    """True when `name` matches the allow-list (empty list allows everything).

    Entries may omit the `.service` suffix and may be shell globs.
    """
    patterns = [p for p in limit_units if p]
    if not patterns:
        return True
    for pattern in patterns:
        if not pattern.endswith(".service") and not pattern.endswith("*"):
            pattern = f"{pattern}.service"
        if fnmatch.fnmatchcase(name, pattern):
            return True
    return False


def merge_units(
    loaded: list[dict[str, Any]],
    files: dict[str, tuple[str, str]],
    scope: Scope,
    limit_units: Iterable[str] = (),
) -> list[UnitWithStatus]:
    """Join runtime units with installed unit files into one sorted snapshot.

    Unit files that are not loaded show up as inactive with load state
    `not-loaded`; template units (`foo@.service`) are skipped.
    """
    limit = list(limit_units)
    units: dict[str, UnitWithStatus] = {}
    for u in loaded:
        name = u["Name"]
        if not name.endswith(".service") or not unit_allowed(name, limit):
            continue
        path, state = files.get(name, (None, None))
        units[name] = UnitWithStatus(
            name=name,
            scope=scope,
            description=u.get("Description") or "",
            load_state=u.get("LoadState") or "unknown",
            active_state=u.get("ActiveState") or "unknown",
            sub_state=u.get("SubState") or "unknown",
            enablement_state=state,
            file_path=path,
        )
    for name, (path, state) in files.items():
        if name in units or not name.endswith(".service") or name.endswith("@.service"):
            continue
        if not unit_allowed(name, limit):
            continue
        units[name] = UnitWithStatus(
            name=name,
            scope=scope,
            load_state="not-loaded",
            enablement_state=state,
            file_path=path,
        )
    return sorted(units.values(), key=lambda s: s.name.lower())


def journal_argv(
    unit: UnitId,
    lines: int,
    follow: bool = False,
    after_cursor: str | None = None,
) -> list[str]:
    argv = ["journalctl", "--quiet", "--no-pager", "--output=short-iso"]
    if unit.scope is Scope.USER:
        argv.append("--user")
    argv.extend(["-u", unit.name])
    if after_cursor:
        argv.append(f"--after-cursor={after_cursor}")
    else:
        argv.extend(["-n", str(lines)])
    if follow:
        argv.append("-f")
    else:
        argv.append("--show-cursor")
    return argv


def split_cursor(lines: list[str]) -> tuple[list[str], str | None]:
    """Strip the trailing `-- cursor: ...` line that --show-cursor appends."""
    if lines and lines[-1].startswith(CURSOR_PREFIX):
        return lines[:-1], lines[-1][len(CURSOR_PREFIX) :].strip()
    return lines, None


class ServiceDirectory:
    """Fetches and mutates unit state for one scope over the systemd D-Bus API.

    Every method raises ServiceDirectoryError on failure, with a message fit to
    show the user. Start/stop/restart/reload return once systemd reports the
    queued job as finished.
    """

    def __init__(self, scope: Scope = Scope.SYSTEM, limit_units: Iterable[str] = ()) -> None:
        self.scope = scope
        self.limit_units = list(limit_units)
        self._bus: MessageBus | None = None
        self._mgr = None
        self._jobs: dict[str, asyncio.Future] = {}
        # JobRemoved can be read before the reply carrying the job path is handled
        self._finished: OrderedDict[str, str] = OrderedDict()

    async def _manager(self):
        if self._mgr is None:
            bus = None
            try:
                bus = await connect_bus(self.scope)
                mgr = await get_manager(bus)
                await mgr.call_subscribe()
            except (DBusError, OSError) as e:
                if bus is not None:
                    bus.disconnect()
                raise ServiceDirectoryError(f"Unable to connect to the {self.scope.value} bus: {e}") from e
            mgr.on_job_removed(self._on_job_removed)
            self._bus = bus
            self._mgr = mgr
        return self._mgr

    def _on_job_removed(self, job_id: int, job: str, unit: str, result: str) -> None:
        fut = self._jobs.get(job)
        if fut is not None:
            if not fut.done():
                fut.set_result(result)
            return
        self._finished[job] = result
        while len(self._finished) > FINISHED_JOBS_KEPT:
            self._finished.popitem(last=False)

    async def _wait_job(self, job: str) -> str:
        if job in self._finished:
            return self._finished.pop(job)
        fut = asyncio.get_running_loop().create_future()
        self._jobs[job] = fut
        try:
            return await fut
        finally:
            self._jobs.pop(job, None)

    async def list_units(self) -> list[UnitWithStatus]:
        mgr = await self._manager()
        try:
            loaded = await list_units(mgr)
            files = await list_unit_files(mgr)
        except DBusError as e:
            raise ServiceDirectoryError(f"Unable to list units: {e}") from e
        return merge_units(loaded, files, self.scope, self.limit_units)

    async def set_unit_state(self, unit: UnitId, verb: str) -> None:
        if verb not in VERBS:
            raise ValueError(f"unknown verb: {verb}")
        mgr = await self._manager()
        logger.info("%s %s", verb, unit.name)
        try:
            if verb == "enable":
                await mgr.call_enable_unit_files([unit.name], False, True)
                await mgr.call_reload()
                return
            if verb == "disable":
                await mgr.call_disable_unit_files([unit.name], False)
                await mgr.call_reload()
                return
            call = {
                "start": mgr.call_start_unit,
                "stop": mgr.call_stop_unit,
                "restart": mgr.call_restart_unit,
                "reload": mgr.call_reload_unit,
            }[verb]
            job = await call(unit.name, "replace")
        except DBusError as e:
            raise ServiceDirectoryError(f"Failed to {verb} {unit.name}: {e}") from e
        result = await self._wait_job(job)
        logger.debug("job %s for %s finished: %s", job, unit.name, result)
        if result not in JOB_OK:
            raise ServiceDirectoryError(f"Failed to {verb} {unit.name}: job {result}")

    async def daemon_reload(self) -> None:
        mgr = await self._manager()
        try:
            await mgr.call_reload()
        except DBusError as e:
            raise ServiceDirectoryError(f"Failed to reload the service manager: {e}") from e

    async def get_unit_file_path(self, unit: UnitId) -> str:
        mgr = await self._manager()
        try:
            unit_path = await mgr.call_load_unit(unit.name)
            fragment = await get_unit_property(self._bus, unit_path, "FragmentPath")
        except DBusError as e:
            raise ServiceDirectoryError(f"Unable to look up unit file of {unit.name}: {e}") from e
        if not fragment:
            raise ServiceDirectoryError(f"{unit.name} has no unit file")
        return str(fragment)

    async def read_logs(self, unit: UnitId, lines: int = DEFAULT_LOG_LINES) -> tuple[list[str], str | None]:
        """Last `lines` journal lines of `unit` and the cursor of the newest one."""
        argv = journal_argv(unit, lines)
        try:
            proc = await asyncio.create_subprocess_exec(*argv, stdin=DEVNULL, stdout=PIPE, stderr=PIPE)
        except OSError as e:
            raise ServiceDirectoryError(f"Unable to run journalctl: {e}") from e
        out, err = await proc.communicate()
        if proc.returncode != 0:
            msg = err.decode(errors="ignore").strip() or f"exit {proc.returncode}"
            raise ServiceDirectoryError(f"Unable to read logs of {unit.name}: {msg}")
        return split_cursor(out.decode(errors="ignore").splitlines())

    async def get_logs(self, unit: UnitId, lines: int = DEFAULT_LOG_LINES) -> list[str]:
        found, _ = await self.read_logs(unit, lines)
        return found

    async def follow_logs(
        self, unit: UnitId, cancel: asyncio.Event, after_cursor: str | None = None
    ) -> AsyncIterator[str]:
        """Yield new journal lines for `unit` until `cancel` is set.

        With `after_cursor` the stream resumes right after that entry, so
        nothing written since a read_logs() call is skipped.
        """
        argv = journal_argv(unit, 0, follow=True, after_cursor=after_cursor)
        try:
            proc = await asyncio.create_subprocess_exec(*argv, stdin=DEVNULL, stdout=PIPE, stderr=DEVNULL)
        except OSError as e:
            raise ServiceDirectoryError(f"Unable to run journalctl: {e}") from e
        cancelled = asyncio.ensure_future(cancel.wait())
        try:
            while not cancel.is_set():
                read = asyncio.ensure_future(proc.stdout.readline())
                done, _ = await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
                if read not in done:
                    read.cancel()
                    break
                raw = read.result()
                if not raw:
                    break
                yield raw.decode(errors="ignore").rstrip("\n")
        finally:
            cancelled.cancel()
            if proc.returncode is None:
                with suppress(ProcessLookupError):
                    proc.terminate()
                await proc.wait()
