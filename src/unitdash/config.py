"""Startup settings for the dashboard.

Settings come from CLI options first, then UNITDASH_* environment variables,
then defaults. They are frozen once the dashboard starts.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from .models import Scope
from .util import default_unit_dir, resolve_editor


DEFAULT_REFRESH_SECONDS = 10.0


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default


def split_limit_units(values: Iterable[str]) -> list[str]:
    """Flatten repeated and comma-separated --limit-units values."""
    out: list[str] = []
    for value in values:
        out.extend(x.strip() for x in value.split(",") if x.strip())
    # de-dupe while preserving order
    seen: set[str] = set()
    return [x for x in out if not (x in seen or seen.add(x))]


@dataclass(frozen=True)
class Settings:
    scope: Scope = Scope.SYSTEM
    limit_units: tuple[str, ...] = ()
    editor: str = "vim"
    debounce: float = 0.0
    refresh_interval: float = DEFAULT_REFRESH_SECONDS
    unit_dir: Path = field(default_factory=lambda: default_unit_dir(Scope.SYSTEM))

    @classmethod
    def load(
        cls,
        *,
        user: bool = False,
        limit_units: Iterable[str] = (),
        debounce_ms: float | None = None,
        refresh_seconds: float | None = None,
        unit_dir: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> Settings:
        env = os.environ if env is None else env
        scope = Scope.USER if user else Scope.SYSTEM
        if debounce_ms is None:
            debounce_ms = _env_float(env, "UNITDASH_DEBOUNCE_MS", 0.0)
        if refresh_seconds is None:
            refresh_seconds = _env_float(env, "UNITDASH_REFRESH_SECONDS", DEFAULT_REFRESH_SECONDS)
        return cls(
            scope=scope,
            limit_units=tuple(split_limit_units(limit_units)),
            editor=resolve_editor(env),
            debounce=max(0.0, debounce_ms) / 1000.0,
            refresh_interval=max(0.0, refresh_seconds),
            unit_dir=unit_dir or default_unit_dir(scope),
        )
