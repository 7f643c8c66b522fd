from __future__ import annotations

from rich.console import Group, RenderableType
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..logging_setup import recent_lines
from ..models import FORM_FIELDS, ModeKind, UnitWithStatus


SPINNER = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

HELP_ROWS = (
    ("j / k, arrows", "move selection / scroll"),
    ("g / G, home / end", "jump to top / bottom"),
    ("pgup / pgdn", "scroll a page"),
    ("enter, l", "show logs of the selected unit"),
    ("s / x / r", "start / stop / restart"),
    ("R", "reload"),
    ("n / N", "enable / disable"),
    ("e", "edit unit file in $EDITOR"),
    ("y", "copy unit file path"),
    ("a", "add a new service"),
    ("ctrl-r", "refresh units"),
    ("L", "toggle log pane"),
    ("?", "toggle this help"),
    ("ctrl-z", "suspend"),
    ("q, ctrl-c", "quit"),
)

FORM_LABELS = {
    "name": "Name",
    "exec_start": "ExecStart",
    "description": "Description",
    "working_dir": "WorkingDirectory",
}


def _state_style(unit: UnitWithStatus) -> str:
    if unit.is_active():
        return "green"
    if unit.is_failed():
        return "red"
    if unit.load_state == "not-loaded":
        return "dim"
    return "yellow"


def _window(count: int, offset: int, rows: int) -> tuple[int, int]:
    """First and last+1 index of a `rows`-tall window that keeps `offset` visible."""
    rows = max(1, rows)
    start = max(0, min(offset - rows // 2, count - rows))
    return start, min(count, start + rows)


def unit_table(home, rows: int) -> Table:
    table = Table(expand=True, box=None, header_style="bold", pad_edge=False)
    table.add_column("Unit", ratio=3, no_wrap=True)
    table.add_column("State", ratio=2, no_wrap=True)
    table.add_column("Enabled", ratio=1, no_wrap=True)
    table.add_column("Description", ratio=4, no_wrap=True)
    start, end = _window(len(home.units), home.selected, rows)
    for idx in range(start, end):
        unit = home.units[idx]
        style = "reverse" if idx == home.selected else None
        table.add_row(
            Text(unit.short_name),
            Text(f"{unit.active_state} ({unit.sub_state})", style=_state_style(unit)),
            Text(unit.enablement_state or "-"),
            Text(unit.description),
            style=style,
        )
    return table


def logs_panel(home, rows: int) -> Panel:
    lines = home.current_logs()
    unit = home.mode.unit
    path = home.unit_file_path(unit) if unit else None
    start, end = _window(len(lines), home.log_offset, rows)
    body = Text("\n".join(lines[start:end]) if lines else "(no log lines yet)", no_wrap=True, overflow="ellipsis")
    subtitle = path or (home.unit_file_errors.get(unit) if unit else None) or ""
    return Panel(body, title=f"logs: {unit.name if unit else '?'}", subtitle=subtitle, border_style="cyan")


def help_panel() -> Panel:
    table = Table(box=None, show_header=False)
    table.add_column(style="bold cyan")
    table.add_column()
    for keys, what in HELP_ROWS:
        table.add_row(keys, what)
    return Panel(table, title="help", border_style="magenta")


def form_panel(mode) -> Panel:
    table = Table(box=None, show_header=False)
    table.add_column(style="bold")
    table.add_column()
    for idx, key in enumerate(FORM_FIELDS):
        value = Text(mode.draft[idx])
        if idx == mode.focus:
            value = Text(mode.draft[idx] + "▏", style="reverse")
        table.add_row(FORM_LABELS[key], value)
    hint = Text("tab: next field · enter: create · esc: cancel", style="dim")
    return Panel(Group(table, Text(""), hint), title="add service", border_style="green")


def status_line(home) -> Text:
    mode = home.mode
    if mode.kind is ModeKind.PROCESSING:
        frame = SPINNER[home.spinner_frame % len(SPINNER)]
        return Text(f" {frame} {mode.message} {mode.unit.name if mode.unit else ''}…", style="yellow")
    unit = home.selected_unit()
    path = home.unit_file_path(unit.id) if unit else None
    return Text(f" {len(home.units)} units · {path or ''} · ? for help", style="dim")


def build_view(home, width: int, height: int) -> RenderableType:
    del width  # layout adapts to the console width
    mode = home.mode
    body_rows = max(1, height - 3)
    if mode.kind is ModeKind.LOGS:
        main: RenderableType = logs_panel(home, body_rows - 2)
    elif mode.kind is ModeKind.ERROR:
        main = Panel(Text(mode.message, style="red"), title="error (any key to continue)", border_style="red")
    elif mode.kind is ModeKind.ADD_SERVICE:
        main = form_panel(mode)
    elif mode.kind is ModeKind.HELP:
        main = help_panel()
    else:
        main = unit_table(home, body_rows - 1)

    layout = Layout()
    parts = [Layout(main, name="main")]
    if home.show_help and mode.kind is not ModeKind.HELP:
        parts.append(Layout(help_panel(), name="help", size=len(HELP_ROWS) + 2))
    if home.show_logger:
        log_rows = max(3, height // 4)
        text = Text("\n".join(recent_lines()[-(log_rows - 2):]), no_wrap=True, overflow="ellipsis")
        parts.append(Layout(Panel(text, title="log", border_style="blue"), name="logger", size=log_rows))
    parts.append(Layout(status_line(home), name="status", size=1))
    layout.split_column(*parts)
    return layout
