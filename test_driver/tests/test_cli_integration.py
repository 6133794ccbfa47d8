"""Integration tests for the CLI pipeline via Click's CliRunner."""

from __future__ import annotations

import json
from unittest.mock import patch

from click.testing import CliRunner

from cmake_steps.cli import _build_cli


def _cli_for(ws):
    """Build a CLI rooted at the given workspace path."""
    return _build_cli(workspace_root=str(ws))


def test_help_lists_tools(make_workspace):
    ws = make_workspace()
    result = CliRunner().invoke(_cli_for(ws), ["--help"])
    assert result.exit_code == 0
    assert "cmake-configure" in result.output
    assert "cmake-build" in result.output
    assert "context" in result.output


def test_context_json_with_config_token(make_workspace):
    ws = make_workspace(
        config_yaml="""\
        tokens:
            flavor: release
        """
    )
    result = CliRunner().invoke(_cli_for(ws), ["context", "--json"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["flavor"] == "release"
    assert data["workspace_root"] == ws.as_posix()


def test_configure_from_config(make_workspace):
    ws = make_workspace(
        config_yaml="""\
        tokens:
            out: "{build_root}/release"
        cmake-configure:
            source_dir: src
            build_dir: "{out}"
            generator: Ninja
            build_type: Release
            environment:
                - name: CC
                  value: clang
        """
    )
    with patch("cmake_steps.invocation.run_command") as mock_run:
        result = CliRunner().invoke(_cli_for(ws), ["cmake-configure"])
    assert result.exit_code == 0, result.output
    assert mock_run.call_args[0][0] == [
        "cmake", str(ws / "src"), "-G", "Ninja", "-DCMAKE_BUILD_TYPE=Release",
    ]
    assert mock_run.call_args[1]["cwd"] == ws / "_build" / "release"
    assert mock_run.call_args[1]["env"] == {"CC": "clang"}


def test_cli_flags_override_config(make_workspace):
    ws = make_workspace(
        config_yaml="""\
        cmake-configure:
            source_dir: .
            generator: Ninja
            build_type: Debug
        """
    )
    with patch("cmake_steps.invocation.run_command") as mock_run:
        result = CliRunner().invoke(
            _cli_for(ws), ["cmake-configure", "-G", "Unix Makefiles", "--build-type", "Release"],
        )
    assert result.exit_code == 0, result.output
    assert mock_run.call_args[0][0] == [
        "cmake", str(ws), "-G", "Unix Makefiles", "-DCMAKE_BUILD_TYPE=Release",
    ]


def test_unpassed_flag_keeps_config_value(make_workspace):
    ws = make_workspace(
        config_yaml="""\
        cmake-build:
            build_dir: out
            clean_first: true
        """
    )
    with patch("cmake_steps.invocation.run_command") as mock_run:
        result = CliRunner().invoke(_cli_for(ws), ["cmake-build", "--target", "all"])
    assert result.exit_code == 0, result.output
    assert mock_run.call_args[0][0] == [
        "cmake", "--build", str(ws / "out"), "--target", "all", "--clean-first",
    ]


def test_build_dry_run(make_workspace, capture_logs):
    ws = make_workspace()
    with patch("cmake_steps.invocation.run_command") as mock_run:
        result = CliRunner().invoke(_cli_for(ws), ["cmake-build", "--clean-first", "--dry-run"])
    assert result.exit_code == 0, result.output
    mock_run.assert_not_called()
    assert f"Would run: cmake --build {ws} --clean-first" in capture_logs.getvalue()


def test_missing_source_dir_exits(make_workspace, capture_logs):
    ws = make_workspace()
    with patch("cmake_steps.invocation.run_command") as mock_run:
        result = CliRunner().invoke(_cli_for(ws), ["cmake-configure"])
    assert result.exit_code == 1
    mock_run.assert_not_called()
    assert "cmake-configure: 'source_dir' is required" in capture_logs.getvalue()


def test_missing_token_exits(make_workspace, capture_logs):
    ws = make_workspace(
        config_yaml="""\
        cmake-build:
            build_dir: "{nowhere}"
        """
    )
    result = CliRunner().invoke(_cli_for(ws), ["cmake-build"])
    assert result.exit_code == 1
    assert "Missing token: nowhere" in capture_logs.getvalue()


def test_bad_config_exits(make_workspace, capture_logs):
    ws = make_workspace(config_yaml="- not\n- a mapping\n")
    result = CliRunner().invoke(_cli_for(ws), ["context"])
    assert result.exit_code == 1
    assert "top-level mapping" in capture_logs.getvalue()
