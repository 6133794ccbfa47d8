"""Shared fixtures for cmake-steps tests."""

from __future__ import annotations

import io
import logging
import textwrap
from pathlib import Path
from typing import Any

import pytest

from cmake_steps import core
from cmake_steps.core import ToolContext, resolve_tokens


@pytest.fixture(autouse=True)
def reset_tool_registry():
    """Save and restore _TOOL_REGISTRY around each test."""
    saved = core._TOOL_REGISTRY.copy()
    yield
    core._TOOL_REGISTRY.clear()
    core._TOOL_REGISTRY.update(saved)


@pytest.fixture
def make_workspace(tmp_path: Path):
    """Factory that creates a temp workspace with an optional config.yaml.

    Usage::

        ws = make_workspace(config_yaml=\"\"\"
            cmake-configure:
                source_dir: src
        \"\"\")
    """
    _counter = 0

    def _make(config_yaml: str | None = None) -> Path:
        nonlocal _counter
        ws = tmp_path / f"workspace_{_counter}"
        ws.mkdir()
        _counter += 1

        if config_yaml is not None:
            (ws / "config.yaml").write_text(
                textwrap.dedent(config_yaml), encoding="utf-8",
            )

        return ws.resolve()

    return _make


@pytest.fixture
def make_tool_context(tmp_path: Path):
    """Factory to build a ToolContext for unit-testing tools directly.

    Usage::

        ctx = make_tool_context(tool_config={"source_dir": "src"})
        tool.execute(ctx, args)
    """

    def _make(
        config: dict[str, Any] | None = None,
        tool_config: dict[str, Any] | None = None,
        tokens_override: dict[str, str] | None = None,
        workspace_root: Path | None = None,
    ) -> ToolContext:
        ws = workspace_root or tmp_path / "ws"
        ws.mkdir(exist_ok=True)
        ws = ws.resolve()

        cfg = config or {}
        tokens = resolve_tokens(str(ws), cfg)
        if tokens_override:
            tokens.update(tokens_override)

        return ToolContext(
            workspace_root=ws,
            tokens=tokens,
            config=cfg,
            tool_config=tool_config or {},
        )

    return _make


@pytest.fixture
def capture_logs():
    """Capture cmake_steps logger output into a StringIO buffer.

    The logger has propagate=False and its own StreamHandler, so
    capsys/caplog cannot see it.  This fixture adds a temporary handler.
    """
    buf = io.StringIO()
    handler = logging.StreamHandler(buf)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = logging.getLogger("cmake_steps")
    logger.addHandler(handler)
    yield buf
    logger.removeHandler(handler)
