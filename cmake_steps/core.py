"""Core framework: RepoTool base, token system, config loading, process execution."""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import os
import platform
import string
import subprocess
import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any

import click
import yaml
from colorama import Fore, Style


# ── Logging ──────────────────────────────────────────────────────────


def _level_color(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return Fore.RED
    if levelno >= logging.WARNING:
        return Fore.YELLOW
    return Fore.CYAN


class ToolFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        color = _level_color(record.levelno)
        message = record.getMessage()
        return f"{color}[{record.levelname.lower()}]{Style.RESET_ALL} {message}"


logger = logging.getLogger("cmake_steps")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(ToolFormatter())
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


# ── Errors ───────────────────────────────────────────────────────────


class ConfigurationError(ValueError):
    """A step attribute is missing or invalid.

    Raised while a step configuration is being built, before any argument
    composition or process spawn.
    """


# ── Token System ─────────────────────────────────────────────────────


class TokenFormatter(string.Formatter):
    """Expands ``{token}`` placeholders in step attributes.

    A token value may itself hold placeholders: ``{release_dir}`` may expand
    to ``{build_root}/release``, which expands again on the next pass.
    ``{{`` and ``}}`` stay escaped across passes and become single braces
    only once no placeholder is left, so ``-DX=${{CMAKE_SOURCE_DIR}}``
    yields ``-DX=${CMAKE_SOURCE_DIR}``.  Cycles raise ``ValueError``.
    """

    MAX_DEPTH = 10

    def __init__(self, tokens: dict[str, str]) -> None:
        self._tokens = tokens

    def _substitute(self, template: str) -> tuple[str, bool]:
        """One pass over *template*; literal braces are re-escaped."""
        parts: list[str] = []
        substituted = False
        for literal, field_name, format_spec, conversion in self.parse(template):
            parts.append(literal.replace("{", "{{").replace("}", "}}"))
            if field_name is None:
                continue
            try:
                value, _ = self.get_field(field_name, (), self._tokens)
            except KeyError as exc:
                missing = exc.args[0] if exc.args else field_name
                raise KeyError(f"Missing token: {missing}") from exc
            value = self.convert_field(value, conversion)
            parts.append(self.format_field(value, format_spec or ""))
            substituted = True
        return "".join(parts), substituted

    def resolve(self, template: str, keep_escapes: bool = False) -> str:
        seen: set[str] = set()
        result = template
        for _ in range(self.MAX_DEPTH):
            expanded, substituted = self._substitute(result)
            if not substituted:
                if keep_escapes:
                    return result
                return "".join(literal for literal, *_ in self.parse(result))
            if expanded in seen:
                raise ValueError(f"Circular token reference: {expanded}")
            seen.add(expanded)
            result = expanded
        raise ValueError(f"Token expansion exceeded {self.MAX_DEPTH} iterations")

    def expand(self, value: Any) -> Any:
        """Resolve tokens in *value*, walking into lists and dicts.

        Non-string leaves (booleans, numbers, ``None``) are returned as-is.
        """
        if isinstance(value, str):
            return self.resolve(value)
        if isinstance(value, list):
            return [self.expand(item) for item in value]
        if isinstance(value, dict):
            return {key: self.expand(item) for key, item in value.items()}
        return value


def _fwd(p: str) -> str:
    """Normalize path to forward slashes."""
    return Path(p).as_posix()


def _builtin_tokens() -> dict[str, str]:
    """``{exe_ext}`` for tool paths such as ``bin/cmake{exe_ext}``, and
    ``{path_sep}`` for joining search paths in environment values."""
    is_win = platform.system() == "Windows"
    return {
        "exe_ext": ".exe" if is_win else "",
        "path_sep": os.pathsep,
    }


def resolve_tokens(workspace_root: str, config: dict[str, Any]) -> dict[str, str]:
    """Build the tokens available to step attributes.

    Values are expanded against each other but keep their ``{{``/``}}``
    escapes, so they can be substituted into step attributes again.

    Merge order (later wins):
      1. Built-in tokens (exe_ext, path_sep)
      2. Variable tokens from the ``tokens`` section of config.yaml
      3. ``workspace_root`` (the step base directory) and ``build_root``
         (``tokens.build_root`` under the workspace, ``_build`` by default)
    """
    tokens: dict[str, str] = _builtin_tokens()

    section = config.get("tokens") or {}
    if not isinstance(section, dict):
        raise TypeError("'tokens' in config.yaml must be a mapping.")
    for key, value in section.items():
        tokens[key] = str(value)

    tokens["workspace_root"] = _fwd(workspace_root)
    tokens["build_root"] = _fwd(str(Path(workspace_root) / section.get("build_root", "_build")))

    # Resolve cross-references between variable tokens
    formatter = TokenFormatter(tokens)
    resolved: dict[str, str] = {}
    for key, value in tokens.items():
        if "{" in value:
            try:
                resolved[key] = formatter.resolve(value, keep_escapes=True)
            except (KeyError, ValueError):
                resolved[key] = value
        else:
            resolved[key] = value
    return resolved


# ── Config Loading ───────────────────────────────────────────────────


def load_config(workspace_root: str) -> dict[str, Any]:
    """Load config.yaml from workspace root."""
    config_path = Path(workspace_root) / "config.yaml"
    if not config_path.exists():
        return {}
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TypeError("config.yaml must contain a top-level mapping.")
    return data


# ── ToolContext ───────────────────────────────────────────────────────


@dataclasses.dataclass(frozen=True)
class ToolContext:
    """Immutable context passed to every tool execution."""

    workspace_root: Path
    tokens: dict[str, str]
    config: dict[str, Any]
    tool_config: dict[str, Any]


# ── RepoTool Base ────────────────────────────────────────────────────


class RepoTool:
    """Base class for all tools.

    Subclasses set ``name`` and ``help``, then implement ``setup()`` to
    add click options and ``execute()`` to run the tool.
    """

    name: str = ""
    help: str = ""

    def setup(self, cmd: click.Command) -> click.Command:
        """Add click options/arguments to the command. Return the command."""
        return cmd

    def default_args(self, tokens: dict[str, str]) -> dict[str, Any]:
        """Return default args dict before config/CLI merge."""
        return {}

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        """Execute the tool with context and tool-specific args."""
        raise NotImplementedError


# ── Tool Registry ────────────────────────────────────────────────────

_TOOL_REGISTRY: dict[str, RepoTool] = {}


def register_tool(tool: RepoTool) -> None:
    _TOOL_REGISTRY[tool.name] = tool


def get_tool(name: str) -> RepoTool | None:
    return _TOOL_REGISTRY.get(name)


def invoke_tool(
    name: str,
    workspace_root: Path,
    config: dict[str, Any],
    extra_args: dict[str, Any] | None = None,
) -> None:
    """Invoke a registered tool programmatically, one call per build step."""
    tool = get_tool(name)
    if tool is None:
        raise KeyError(f"Tool '{name}' is not registered.")

    tool_config = config.get(name, {})
    if not isinstance(tool_config, dict):
        tool_config = {}

    ctx = ToolContext(
        workspace_root=workspace_root,
        tokens=resolve_tokens(str(workspace_root), config),
        config=config,
        tool_config=tool_config,
    )

    args: dict[str, Any] = {**tool.default_args(ctx.tokens)}
    args.update(tool_config)
    if extra_args:
        args.update(extra_args)

    tool.execute(ctx, args)


# ── Process Execution ────────────────────────────────────────────────


def _is_ci() -> bool:
    return os.environ.get("GITHUB_ACTIONS") == "true"


@contextlib.contextmanager
def log_section(title: str) -> Generator[None, None, None]:
    """Foldable CI section or styled terminal header."""
    if _is_ci():
        print(f"::group::{title}", flush=True)
    else:
        logger.info(f"── {title} ──")
    try:
        yield
    finally:
        if _is_ci():
            print("::endgroup::", flush=True)


def print_subprocess_line(line: str) -> None:
    text = line.rstrip()
    print(f"{Style.DIM}{text}{Style.RESET_ALL}")


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    log_file: Path | None = None,
) -> None:
    """Run a command and optionally tee output to a log file.

    *env* holds overrides layered on top of the current process
    environment.  A non-zero exit status terminates with the same code.
    """
    run_env = None
    if env:
        run_env = {**os.environ, **env}

    try:
        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(log_file, "w", encoding="utf-8", errors="replace") as f:
                process = subprocess.Popen(
                    cmd,
                    cwd=cwd,
                    env=run_env,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    bufsize=1,
                )
                for line in process.stdout:
                    print_subprocess_line(line)
                    f.write(line)
                process.wait()
                if process.returncode != 0:
                    sys.exit(process.returncode)
        else:
            try:
                subprocess.run(cmd, cwd=cwd, env=run_env, check=True)
            except subprocess.CalledProcessError as e:
                sys.exit(e.returncode)
    except FileNotFoundError:
        logger.error(f"Program not found: {cmd[0]}")
        sys.exit(127)
