"""Shared step plumbing: program resolution, process preparation, step tool base."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any, ClassVar

import click

from .arguments import ArgumentList, RawLine
from .core import ConfigurationError, RepoTool, TokenFormatter, ToolContext, log_section, logger, run_command
from .environment import EnvironmentEntry, parse_environment


def none_if_empty(value: Any) -> str | None:
    """Treat ``None`` and ``""`` alike as "not configured"."""
    if value is None:
        return None
    value = str(value)
    return value or None


def raw_line(value: Any, attribute: str) -> str | None:
    """Like :func:`none_if_empty`, but the text must split into shell words."""
    line = none_if_empty(value)
    if line is not None:
        try:
            RawLine(line).argv()
        except ValueError as exc:
            raise ConfigurationError(f"'{attribute}' cannot be split into arguments: {exc}") from exc
    return line


def resolve_under(base_dir: Path, value: Path | str | None) -> Path | None:
    if value is None or value == "":
        return None
    return Path(os.path.abspath(Path(base_dir) / value))


# ── Step Configuration ───────────────────────────────────────────────


@dataclasses.dataclass(frozen=True, kw_only=True)
class StepConfig:
    """Attributes shared by every CMake step.

    Relative ``build_dir`` and ``log_file`` values are taken relative to
    ``base_dir``.  An unset ``build_dir`` means the base directory itself.
    """

    base_dir: Path
    cmake_path: str = "cmake"
    build_dir: Path | None = None
    environment: tuple[EnvironmentEntry, ...] = ()
    log_file: Path | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.cmake_path, str) or not self.cmake_path:
            raise ConfigurationError("'cmake_path' must be a non-empty string")
        object.__setattr__(self, "base_dir", Path(os.path.abspath(self.base_dir)))
        object.__setattr__(self, "build_dir", resolve_under(self.base_dir, self.build_dir))
        object.__setattr__(self, "log_file", resolve_under(self.base_dir, self.log_file))
        object.__setattr__(self, "environment", tuple(self.environment))

    @property
    def build_directory(self) -> Path:
        return self.build_dir or self.base_dir

    @staticmethod
    def shared_fields(section_name: str, base_dir: Path, args: dict[str, Any]) -> dict[str, Any]:
        """Pick the shared attributes out of a merged args dict."""
        fields: dict[str, Any] = {"base_dir": base_dir}
        if args.get("cmake_path") is not None:
            fields["cmake_path"] = str(args["cmake_path"])
        fields["build_dir"] = none_if_empty(args.get("build_dir"))
        fields["log_file"] = none_if_empty(args.get("log_file"))
        fields["environment"] = parse_environment(section_name, args.get("environment"), base_dir)
        return fields


# ── Program Resolution ───────────────────────────────────────────────


def resolve_program_path(configured_path: str, base_dir: Path | str) -> str:
    """Return the executable to pass to the spawner.

    Absolute paths are trusted as-is.  A relative path is tried against
    *base_dir*; if no file exists there the configured string is returned
    unchanged so the spawner can search ``PATH``.
    """
    if os.path.isabs(configured_path):
        return configured_path
    full_path = os.path.abspath(os.path.join(base_dir, configured_path))
    if os.path.isfile(full_path):
        return full_path
    return configured_path


# ── Process Preparation ──────────────────────────────────────────────


@dataclasses.dataclass(frozen=True)
class PreparedProcess:
    working_directory: str
    environment_overrides: dict[str, str]


def prepare_invocation(build_dir: Path | str, entries: Iterable[EnvironmentEntry]) -> PreparedProcess:
    """Working directory and environment overrides for a step's process.

    Entries are applied in order; excluded entries are skipped and a later
    entry with the same name overwrites an earlier one.
    """
    overrides: dict[str, str] = {}
    for entry in entries:
        if entry.applies:
            overrides[entry.name] = "" if entry.value is None else entry.value
    return PreparedProcess(
        working_directory=os.path.abspath(build_dir),
        environment_overrides=overrides,
    )


@dataclasses.dataclass(frozen=True)
class Invocation:
    """Everything the spawner needs to run one step."""

    program: str
    arguments: ArgumentList
    process: PreparedProcess

    @property
    def command_line(self) -> str:
        return f"{self.program} {self.arguments}"

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.arguments.to_argv()]


# ── Step Tool Base ───────────────────────────────────────────────────


class ExternalProgramTool(RepoTool):
    """Base for tools that run CMake for one configured step.

    Subclasses list their extra attribute names in ``step_keys`` and
    implement ``make_config()`` and ``compose_arguments()``.
    """

    step_keys: ClassVar[frozenset[str]] = frozenset()
    _shared_keys: ClassVar[frozenset[str]] = frozenset(
        {"cmake_path", "build_dir", "environment", "log_file"}
    )
    _control_keys: ClassVar[frozenset[str]] = frozenset({"dry_run"})

    def setup(self, cmd: click.Command) -> click.Command:
        cmd = click.option("--dry-run", is_flag=True, help="Print resolved command without executing")(cmd)
        return cmd

    def make_config(self, base_dir: Path, args: dict[str, Any]) -> StepConfig:
        raise NotImplementedError

    def compose_arguments(self, config: StepConfig) -> ArgumentList:
        raise NotImplementedError

    def build_config(self, ctx: ToolContext, args: dict[str, Any]) -> StepConfig:
        """Check attribute names, expand tokens and build the step config."""
        unknown = set(args) - self.step_keys - self._shared_keys - self._control_keys
        if unknown:
            raise ConfigurationError(f"'{self.name}' has unknown keys: {sorted(unknown)}")
        formatter = TokenFormatter(ctx.tokens)
        expanded = {k: formatter.expand(v) for k, v in args.items() if k not in self._control_keys}
        return self.make_config(ctx.workspace_root, expanded)

    def invocation(self, config: StepConfig) -> Invocation:
        return Invocation(
            program=resolve_program_path(config.cmake_path, config.base_dir),
            arguments=self.compose_arguments(config),
            process=prepare_invocation(config.build_directory, config.environment),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        config = self.build_config(ctx, args)
        invocation = self.invocation(config)
        process = invocation.process

        if args.get("dry_run"):
            logger.info(f"Would run: {invocation.command_line}")
            logger.info(f"  cwd: {process.working_directory}")
            for key, value in process.environment_overrides.items():
                logger.info(f"  env: {key}={value}")
            return

        argv = invocation.argv
        with log_section(self.name):
            logger.info(f"Running: {invocation.command_line}")
            Path(process.working_directory).mkdir(parents=True, exist_ok=True)
            run_command(
                argv,
                cwd=Path(process.working_directory),
                env=process.environment_overrides,
                log_file=config.log_file,
            )
