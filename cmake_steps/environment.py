"""Conditional environment variables passed to a step's process."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from .core import ConfigurationError

_ENTRY_KEYS = {"name", "value", "dir", "path", "if", "unless"}

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


@dataclasses.dataclass(frozen=True)
class EnvironmentEntry:
    """One environment variable with its ``if``/``unless`` gates.

    A missing *value* sets the variable to the empty string.
    """

    name: str
    value: str | None = None
    include_if: bool = True
    exclude_if: bool = False

    @property
    def applies(self) -> bool:
        return self.include_if and not self.exclude_if


def parse_bool(value: Any, what: str) -> bool:
    """Accept a YAML boolean or a true/false-like string."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ConfigurationError(f"{what} must be a boolean, got {value!r}")


def _absolute(base_dir: Path, value: str) -> str:
    return os.path.abspath(base_dir / value)


def parse_environment(section_name: str, raw: Any, base_dir: Path) -> tuple[EnvironmentEntry, ...]:
    """Validate an ``environment`` list from config into entries.

    Each item is a dict with ``name`` (required) and at most one of
    ``value``, ``dir`` or ``path``, plus optional ``if``/``unless`` gates.
    ``dir`` becomes an absolute path relative to *base_dir*; ``path`` takes
    a string or a list and joins the absolute paths with ``os.pathsep``.
    """
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigurationError(
            f"'{section_name}' environment must be a list, got {type(raw).__name__}"
        )

    entries: list[EnvironmentEntry] = []
    for i, item in enumerate(raw):
        where = f"'{section_name}' environment [{i}]"
        if not isinstance(item, dict):
            raise ConfigurationError(f"{where} must be a dict, got {type(item).__name__}")
        unknown = set(item) - _ENTRY_KEYS
        if unknown:
            raise ConfigurationError(f"{where} has unknown keys: {sorted(unknown)}")
        name = item.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"{where} missing required 'name'")

        sources = [k for k in ("value", "dir", "path") if item.get(k) is not None]
        if len(sources) > 1:
            raise ConfigurationError(f"{where} sets more than one of {sources}")

        value: str | None = None
        if "value" in sources:
            value = str(item["value"])
        elif "dir" in sources:
            value = _absolute(base_dir, str(item["dir"]))
        elif "path" in sources:
            parts = item["path"]
            if isinstance(parts, str):
                parts = [parts]
            if not isinstance(parts, list):
                raise ConfigurationError(f"{where} 'path' must be a string or list")
            value = os.pathsep.join(_absolute(base_dir, str(p)) for p in parts)

        entries.append(
            EnvironmentEntry(
                name=name,
                value=value,
                include_if=parse_bool(item.get("if", True), f"{where} 'if'"),
                exclude_if=parse_bool(item.get("unless", False), f"{where} 'unless'"),
            )
        )
    return tuple(entries)
