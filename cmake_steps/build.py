"""BuildTool — compile an existing build tree with ``cmake --build``."""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any

import click

from .arguments import ArgumentList, DirectoryArg, RawLine
from .environment import parse_bool
from .invocation import ExternalProgramTool, StepConfig, none_if_empty, raw_line


@dataclasses.dataclass(frozen=True, kw_only=True)
class BuildStepConfig(StepConfig):
    target: str | None = None
    config: str | None = None
    clean_first: bool = False
    native_tool_options: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        for name in ("target", "config"):
            object.__setattr__(self, name, none_if_empty(getattr(self, name)))
        object.__setattr__(self, "clean_first", parse_bool(self.clean_first, "'clean_first'"))
        object.__setattr__(self, "native_tool_options", raw_line(self.native_tool_options, "native_tool_options"))


def compose_build_arguments(config: BuildStepConfig) -> ArgumentList:
    arguments = ArgumentList()
    arguments.add("--build", DirectoryArg(config.build_directory))

    if config.target is not None:
        arguments.add("--target", config.target)

    if config.config is not None:
        arguments.add("--config", config.config)

    if config.clean_first:
        arguments.add("--clean-first")

    if config.native_tool_options is not None:
        arguments.add(RawLine(config.native_tool_options))

    return arguments


class BuildTool(ExternalProgramTool):
    name = "cmake-build"
    help = "Build a previously generated build tree (cmake --build <build_dir>)"

    step_keys = frozenset({"target", "config", "clean_first", "native_tool_options"})

    def setup(self, cmd: click.Command) -> click.Command:
        cmd = super().setup(cmd)
        cmd = click.option("--clean-first", is_flag=True, help="Clean the target before building")(cmd)
        cmd = click.option("--config", default=None, help="Configuration for multi-config generators")(cmd)
        cmd = click.option("--target", default=None, help="Build this target instead of the default")(cmd)
        return cmd

    def default_args(self, tokens: dict[str, str]) -> dict[str, Any]:
        return {"clean_first": False}

    def make_config(self, base_dir: Path, args: dict[str, Any]) -> BuildStepConfig:
        return BuildStepConfig(
            **StepConfig.shared_fields(self.name, base_dir, args),
            target=args.get("target"),
            config=args.get("config"),
            clean_first=args.get("clean_first", False),
            native_tool_options=args.get("native_tool_options"),
        )

    def compose_arguments(self, config: BuildStepConfig) -> ArgumentList:
        return compose_build_arguments(config)
