"""Command line smoke tests (no network: explicit server or rejected policy)."""

from __future__ import annotations

import json

from click.testing import CliRunner

from cli import cli


def test_locate_with_explicit_server() -> None:
    result = CliRunner().invoke(cli, ["locate", "--server", "ndt.example.org", "--metadata", "client_name=cli"])
    assert result.exit_code == 0, result.output
    lines = [line for line in result.output.splitlines() if line.startswith(("download", "upload"))]
    assert len(lines) == 2
    assert "wss://ndt.example.org/ndt/v7/download?" in lines[0]
    assert "client_name=cli" in lines[0]
    assert "wss://ndt.example.org/ndt/v7/upload?" in lines[1]


def test_command_prefix() -> None:
    result = CliRunner().invoke(cli, ["loc", "--server", "localhost:8080", "--protocol", "ws"])
    assert result.exit_code == 0, result.output
    assert "ws://localhost:8080/ndt/v7/upload?" in result.output


def test_bad_metadata() -> None:
    result = CliRunner().invoke(cli, ["locate", "--server", "x", "--metadata", "novalue"])
    assert result.exit_code != 0
    assert "key=value" in result.output


def test_run_requires_policy_json() -> None:
    result = CliRunner().invoke(cli, ["run", "--server", "ndt.example.org", "--format", "json"])
    assert result.exit_code == 0, result.output
    events = [json.loads(line) for line in result.output.splitlines() if line.startswith("{")]
    assert [event["Event"] for event in events] == ["error"]
    assert "data policy" in events[0]["Data"]


def test_download_requires_policy_human() -> None:
    result = CliRunner().invoke(cli, ["download", "--server", "ndt.example.org"])
    assert result.exit_code == 0, result.output
    assert "data policy" in result.output
    assert "NO STATS AVAILABLE" in result.output
