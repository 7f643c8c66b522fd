"""Keymap: key tokens in, actions out.

The keymap only reads the view model; every change it wants is expressed as
actions on the queue. Form edits are relative to whatever form state is
current when they are dispatched, so keys that arrive faster than the
queue drains are never lost.
"""

from __future__ import annotations

from ..models import Mode, ModeKind
from .action import (
    Action,
    CopyUnitFilePath,
    DisableService,
    EditUnitFile,
    EnableService,
    EnterError,
    EnterMode,
    FormBackspace,
    FormFocus,
    FormInput,
    Quit,
    RefreshServices,
    ReloadService,
    RestartService,
    ScrollDown,
    ScrollToBottom,
    ScrollToTop,
    ScrollUp,
    StartService,
    StopService,
    SubmitForm,
    Suspend,
    ToggleHelp,
    ToggleShowLogger,
)


PAGE = 10

# Textual key names to keymap tokens
_NAMED_KEYS = {
    "up": "UP",
    "down": "DOWN",
    "left": "LEFT",
    "right": "RIGHT",
    "home": "HOME",
    "end": "END",
    "pageup": "PAGE_UP",
    "pagedown": "PAGE_DOWN",
    "delete": "DELETE",
    "escape": "ESC",
    "enter": "ENTER",
    "tab": "TAB",
    "shift+tab": "SHIFT_TAB",
    "backspace": "BACKSPACE",
    "ctrl+h": "BACKSPACE",
    "ctrl+c": "CTRL_C",
    "ctrl+r": "CTRL_R",
    "ctrl+z": "CTRL_Z",
}


def key_token(key: str, character: str | None) -> str | None:
    """Keymap token for a key event, None for keys the dashboard ignores."""
    if key in _NAMED_KEYS:
        return _NAMED_KEYS[key]
    if character and len(character) == 1 and character.isprintable():
        return character
    return None


def _form_actions(key: str) -> list[Action]:
    if key == "ESC":
        return [EnterMode(Mode.service_list())]
    if key in {"TAB", "DOWN"}:
        return [FormFocus(1)]
    if key in {"SHIFT_TAB", "UP"}:
        return [FormFocus(-1)]
    if key == "ENTER":
        return [SubmitForm()]
    if key == "BACKSPACE":
        return [FormBackspace()]
    if len(key) == 1:
        return [FormInput(key)]
    return []


def actions_for_paste(home, text: str) -> list[Action]:
    """Pasted text goes into the focused form input; elsewhere it is ignored."""
    if home.mode.kind is not ModeKind.ADD_SERVICE:
        return []
    text = " ".join(line for line in text.splitlines() if line)
    text = "".join(ch for ch in text if ch.isprintable())
    return [FormInput(text)] if text else []


def _scroll_actions(key: str) -> list[Action]:
    if key in {"UP", "k"}:
        return [ScrollUp(1)]
    if key in {"DOWN", "j"}:
        return [ScrollDown(1)]
    if key == "PAGE_UP":
        return [ScrollUp(PAGE)]
    if key == "PAGE_DOWN":
        return [ScrollDown(PAGE)]
    if key in {"HOME", "g"}:
        return [ScrollToTop()]
    if key in {"END", "G"}:
        return [ScrollToBottom()]
    return []


def actions_for_key(home, key: str) -> list[Action]:
    """Map one key token to the actions it triggers in the current mode."""
    mode = home.mode
    if key == "CTRL_C":
        return [Quit()]
    if key == "CTRL_Z":
        return [Suspend()]

    if mode.kind is ModeKind.ADD_SERVICE:
        return _form_actions(key)
    if mode.kind is ModeKind.ERROR:
        return [EnterMode(Mode.service_list())]
    if mode.kind is ModeKind.PROCESSING:
        return []
    if home.show_help and key in {"?", "ESC", "q"}:
        return [ToggleHelp()]
    if mode.kind is ModeKind.HELP:
        if key in {"?", "ESC", "q"}:
            return [EnterMode(Mode.service_list())]
        return []

    if key == "?":
        return [ToggleHelp()]
    if key == "L":
        return [ToggleShowLogger()]
    if key == "CTRL_R":
        return [RefreshServices()]
    if key == "y":
        return [CopyUnitFilePath()]

    if mode.kind is ModeKind.LOGS:
        if key in {"ESC", "q", "h", "LEFT"}:
            return [EnterMode(Mode.service_list())]
        return _scroll_actions(key)

    # service list
    if key == "q":
        return [Quit()]
    if key == "a":
        return [EnterMode(Mode.add_service())]
    scroll = _scroll_actions(key)
    if scroll:
        return scroll
    unit = home.selected_unit()
    if unit is None:
        return []
    if key in {"ENTER", "l", "RIGHT"}:
        return [EnterMode(Mode.logs(unit.id))]
    if key == "e":
        path = home.unit_file_path(unit.id)
        if not path:
            return [EnterError(f"Unit file path of {unit.name} is not known")]
        return [EditUnitFile(unit.id, path)]
    verbs = {
        "s": StartService,
        "x": StopService,
        "r": RestartService,
        "R": ReloadService,
        "n": EnableService,
        "N": DisableService,
    }
    if key in verbs:
        return [verbs[key](unit.id)]
    return []
