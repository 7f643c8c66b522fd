import os
import shlex
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

from .models import NewService, Scope


DEFAULT_EDITOR = "vim"
SYSTEM_UNIT_DIR = Path("/etc/systemd/system")

UNIT_TEMPLATE = """[Unit]
{desc}Description={description}
After=network.target
#Requires=postgresql.service

[Service]
Type=simple
User=root
{working_dir}WorkingDirectory={working_directory}
ExecStart={exec_start}
Restart=on-failure
RestartSec=5
#Environment=PORT={port}
#Environment=NODE_ENV=production

[Install]
WantedBy=multi-user.target
"""


def is_tty() -> bool:
    try:
        return sys.stdin.isatty() and sys.stdout.isatty()
    except Exception:
        return False


def resolve_editor(env: Optional[dict] = None) -> str:
    """Editor command line from $EDITOR, falling back to vim."""
    env = os.environ if env is None else env
    editor = (env.get("EDITOR") or "").strip()
    return editor or DEFAULT_EDITOR


def editor_argv(editor: str, path: str) -> list[str]:
    # EDITOR may carry flags ("code -w"), so split it like a shell would
    return shlex.split(editor) + [path]


def default_unit_dir(scope: Scope) -> Path:
    if scope is Scope.USER:
        config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
        return Path(config_home) / "systemd" / "user"
    return SYSTEM_UNIT_DIR


def unit_name(service_name: str) -> str:
    if service_name.endswith(".service"):
        return service_name
    return f"{service_name}.service"


def render_unit_file(service: NewService) -> str:
    """Fill the unit template; stanzas for omitted optional fields stay commented out."""
    # str.replace rather than format: the template keeps a literal {port} placeholder
    return (
        UNIT_TEMPLATE.replace("{description}", service.description or "")
        .replace("{working_directory}", service.working_dir or "")
        .replace("{working_dir}", "" if service.working_dir else "#")
        .replace("{exec_start}", service.exec_start)
        .replace("{desc}", "" if service.description else "#")
    )


def copy_text_to_clipboard(text: str) -> bool:
    """Best-effort clipboard copy across macOS and common Linux tools."""
    if not text:
        return False

    candidates: list[list[str]] = []
    if sys.platform == "darwin":
        candidates.append(["pbcopy"])
    else:
        candidates.extend(
            [
                ["wl-copy"],
                ["xclip", "-selection", "clipboard"],
                ["xsel", "--clipboard", "--input"],
            ]
        )

    for argv in candidates:
        if shutil.which(argv[0]) is None:
            continue
        try:
            proc = subprocess.run(argv, input=text, text=True, check=False)
        except OSError:
            continue
        if proc.returncode == 0:
            return True
    return False
