"""ContextTool — show the ``{token}`` values step attributes can use."""

from __future__ import annotations

import json
from typing import Any

import click

from .core import RepoTool, ToolContext, logger

# Tokens every workspace has, whatever config.yaml declares.
BUILTIN_TOKENS = {
    "workspace_root": "base directory of every step",
    "build_root": "tokens.build_root under the workspace (default _build)",
    "exe_ext": "executable suffix for cmake_path",
    "path_sep": "separator for search paths in environment values",
}


class ContextTool(RepoTool):
    name = "context"
    help = "Show tokens usable as {name} in cmake-configure/cmake-build attributes"

    def setup(self, cmd: click.Command) -> click.Command:
        cmd = click.option("--json", "as_json", is_flag=True, help="Output token values as JSON")(cmd)
        return cmd

    def default_args(self, tokens: dict[str, str]) -> dict[str, Any]:
        return {"as_json": False}

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        if args.get("as_json"):
            print(json.dumps(dict(sorted(ctx.tokens.items())), indent=2))
            return

        for key in BUILTIN_TOKENS:
            if key in ctx.tokens:
                logger.info(f"{key}: {ctx.tokens[key]}  ({BUILTIN_TOKENS[key]})")
        for key, value in sorted(ctx.tokens.items()):
            if key not in BUILTIN_TOKENS:
                logger.info(f"{key}: {value}")
