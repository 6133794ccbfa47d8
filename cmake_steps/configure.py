"""ConfigureTool — generate a build tree with ``cmake <source_dir>``."""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any

import click

from .arguments import ArgumentList, DirectoryArg, FileArg, RawLine
from .core import ConfigurationError
from .invocation import ExternalProgramTool, StepConfig, none_if_empty, raw_line, resolve_under


@dataclasses.dataclass(frozen=True, kw_only=True)
class ConfigureStepConfig(StepConfig):
    """Attributes of a configure step.

    ``source_dir`` holds the top-level ``CMakeLists.txt`` and is required.
    ``preload_script`` is passed to ``-C`` to pre-populate the cache;
    ``cmake_args`` is appended to the command line exactly as written.
    """

    source_dir: Path | str
    build_type: str | None = None
    generator: str | None = None
    preload_script: Path | None = None
    cmake_args: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.source_dir is None or str(self.source_dir) == "":
            raise ConfigurationError("'source_dir' is required and must not be empty")
        object.__setattr__(self, "source_dir", resolve_under(self.base_dir, self.source_dir))
        object.__setattr__(self, "preload_script", resolve_under(self.base_dir, self.preload_script))
        for name in ("build_type", "generator"):
            object.__setattr__(self, name, none_if_empty(getattr(self, name)))
        object.__setattr__(self, "cmake_args", raw_line(self.cmake_args, "cmake_args"))


def compose_configure_arguments(config: ConfigureStepConfig) -> ArgumentList:
    arguments = ArgumentList()
    arguments.add(DirectoryArg(config.source_dir))

    # The preload script is only passed along with an explicit generator.
    if config.generator is not None and config.preload_script is not None:
        arguments.add("-C", FileArg(config.preload_script))

    if config.generator is not None:
        arguments.add("-G", config.generator)

    if config.build_type is not None:
        arguments.add(f"-DCMAKE_BUILD_TYPE={config.build_type}")

    if config.cmake_args is not None:
        arguments.add(RawLine(config.cmake_args))

    return arguments


class ConfigureTool(ExternalProgramTool):
    name = "cmake-configure"
    help = "Generate a build tree from a source tree (cmake <source_dir>)"

    step_keys = frozenset({"source_dir", "build_type", "generator", "preload_script", "cmake_args"})

    def setup(self, cmd: click.Command) -> click.Command:
        cmd = super().setup(cmd)
        cmd = click.option("--build-type", "-bt", default=None, help="Build type override")(cmd)
        cmd = click.option("--generator", "-G", default=None, help="Build script generator override")(cmd)
        return cmd

    def make_config(self, base_dir: Path, args: dict[str, Any]) -> ConfigureStepConfig:
        return ConfigureStepConfig(
            **StepConfig.shared_fields(self.name, base_dir, args),
            source_dir=none_if_empty(args.get("source_dir")),
            build_type=args.get("build_type"),
            generator=args.get("generator"),
            preload_script=none_if_empty(args.get("preload_script")),
            cmake_args=args.get("cmake_args"),
        )

    def compose_arguments(self, config: ConfigureStepConfig) -> ArgumentList:
        return compose_configure_arguments(config)
