from __future__ import annotations

import subprocess
from dataclasses import replace
from pathlib import Path

import pytest

import rwl.runners as runners
from rwl.config import default_config
from rwl.models import ProcessSpawnError
from rwl.runners import build_agent_argv, invoke_agent


def test_build_agent_argv_with_skip_permissions() -> None:
    config = replace(default_config(), agent_model="sonnet")

    argv = build_agent_argv(config, "do the thing")

    assert argv == [
        "claude",
        "--print",
        "--model",
        "sonnet",
        "--max-turns",
        "1",
        "--dangerously-skip-permissions",
        "do the thing",
    ]


def test_build_agent_argv_without_skip_permissions() -> None:
    config = replace(default_config(), dangerously_skip_permissions=False)

    argv = build_agent_argv(config, "prompt")

    assert "--dangerously-skip-permissions" not in argv
    assert argv[-1] == "prompt"


def test_invoke_agent_missing_cli_raises_spawn_error(tmp_path: Path) -> None:
    config = replace(default_config(), agent_command="rwl-test-agent-that-does-not-exist")

    with pytest.raises(ProcessSpawnError, match="CLI not found"):
        invoke_agent(tmp_path, config, "prompt")


def test_invoke_agent_returns_exit_code_and_combined_output(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    captured: dict = {}

    def _fake_run(argv, **kwargs):
        captured["argv"] = argv
        captured["cwd"] = kwargs.get("cwd")
        return subprocess.CompletedProcess(argv, 2, "agent stdout", "agent stderr")

    monkeypatch.setattr(runners.shutil, "which", lambda name: f"/usr/local/bin/{name}")
    monkeypatch.setattr(runners.subprocess, "run", _fake_run)

    result = invoke_agent(tmp_path, default_config(), "prompt text")

    assert result.exit_code == 2
    assert "agent stdout" in result.output
    assert "agent stderr" in result.output
    assert captured["argv"][0] == "/usr/local/bin/claude"
    assert captured["argv"][-1] == "prompt text"
    assert captured["cwd"] == tmp_path


def test_invoke_agent_os_error_raises_spawn_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken_run(argv, **kwargs):
        raise PermissionError("not executable")

    monkeypatch.setattr(runners.shutil, "which", lambda name: f"/usr/local/bin/{name}")
    monkeypatch.setattr(runners.subprocess, "run", _broken_run)

    with pytest.raises(ProcessSpawnError, match="Failed to execute claude command"):
        invoke_agent(tmp_path, default_config(), "prompt")
