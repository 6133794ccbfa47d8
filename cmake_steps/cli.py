"""Entry point: main(), click group, tool discovery."""

from __future__ import annotations

import importlib
import inspect
import pkgutil
from pathlib import Path
from typing import Any

import click
from click.core import ParameterSource

from .core import (
    ConfigurationError,
    RepoTool,
    ToolContext,
    load_config,
    logger,
    register_tool,
    resolve_tokens,
)

# Modules that hold framework pieces rather than tools.
_NON_TOOL_MODULES = ("cli", "core", "arguments", "environment", "invocation")


# ── Tool Discovery ───────────────────────────────────────────────────


def _discover_tools(namespace_path: list[str], package_name: str) -> list[RepoTool]:
    """Instantiate the RepoTool subclasses defined in the package's modules."""
    tools: list[RepoTool] = []
    for module_info in pkgutil.iter_modules(namespace_path):
        name = module_info.name
        if name.startswith("_") or name in _NON_TOOL_MODULES:
            continue
        try:
            module = importlib.import_module(f"{package_name}.{name}")
        except ImportError as exc:
            logger.debug(f"Could not import {package_name}.{name}: {exc}")
            continue

        for _, cls in inspect.getmembers(module, inspect.isclass):
            if not issubclass(cls, RepoTool) or cls.__module__ != module.__name__:
                continue
            tool = cls()
            if not tool.name:
                logger.warning(f"Skipping tool '{cls.__name__}' with empty name")
                continue
            tools.append(tool)
    return sorted(tools, key=lambda t: t.name)


# ── Click Command Builder ────────────────────────────────────────────


def _build_tool_context(ctx_obj: dict[str, Any], tool_name: str) -> ToolContext:
    """Build a ToolContext from the click context obj dict."""
    config = ctx_obj["config"]
    tool_config = config.get(tool_name, {})
    if not isinstance(tool_config, dict):
        tool_config = {}
    return ToolContext(
        workspace_root=Path(ctx_obj["workspace_root"]),
        tokens=ctx_obj["tokens"],
        config=config,
        tool_config=tool_config,
    )


def _make_tool_command(tool: RepoTool) -> click.Command:
    """Build a click command for a tool."""

    @click.pass_context
    def callback(ctx: click.Context, **kwargs: Any) -> None:
        context = _build_tool_context(ctx.obj, tool.name)

        # Merge: defaults < tool_config < CLI flags the user actually passed
        args: dict[str, Any] = {**tool.default_args(context.tokens)}
        args.update(context.tool_config)
        for k, v in kwargs.items():
            if ctx.get_parameter_source(k) is not ParameterSource.DEFAULT and v is not None:
                args[k] = v

        try:
            tool.execute(context, args)
        except (ConfigurationError, KeyError, ValueError) as exc:
            # KeyError/ValueError come from token expansion of step attributes
            logger.error(f"{tool.name}: {exc.args[0] if exc.args else exc}")
            raise SystemExit(1) from exc

    cmd = click.Command(
        name=tool.name,
        help=tool.help,
        callback=callback,
    )

    # Let the tool add its own options
    cmd = tool.setup(cmd)

    return cmd


# ── Main CLI Group ───────────────────────────────────────────────────


def _build_cli(workspace_root: str | None = None) -> click.Group:
    """Build the top-level click group with all discovered tools."""

    @click.group(context_settings={"help_option_names": ["-h", "--help"]})
    @click.option(
        "--workspace-root",
        type=click.Path(exists=True, file_okay=False),
        default=workspace_root,
        help="Directory holding config.yaml; step paths are relative to it.",
    )
    @click.pass_context
    def cli(ctx: click.Context, workspace_root: str | None) -> None:
        ctx.ensure_object(dict)

        if workspace_root is None:
            workspace_root = str(Path.cwd())
        workspace_root = str(Path(workspace_root).resolve())

        try:
            config = load_config(workspace_root)
            tokens = resolve_tokens(workspace_root, config)
        except (TypeError, ValueError) as exc:
            logger.error(f"config.yaml: {exc}")
            raise SystemExit(1) from exc

        ctx.obj["workspace_root"] = workspace_root
        ctx.obj["config"] = config
        ctx.obj["tokens"] = tokens

    package = importlib.import_module(__package__)
    for tool in _discover_tools(list(package.__path__), package.__name__):
        register_tool(tool)
        cli.add_command(_make_tool_command(tool))

    return cli


def main() -> None:
    """Console entry point."""
    from colorama import init as colorama_init
    colorama_init()

    cli = _build_cli()
    cli(prog_name="cmake-steps", standalone_mode=True)


if __name__ == "__main__":
    main()
