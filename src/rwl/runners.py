from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path

from rwl.models import AgentResult, LoopConfiguration, ProcessSpawnError


def build_agent_argv(config: LoopConfiguration, prompt: str) -> list[str]:
    argv = [
        config.agent_command,
        "--print",
        "--model",
        config.agent_model,
        "--max-turns",
        "1",
    ]
    if config.dangerously_skip_permissions:
        argv.append("--dangerously-skip-permissions")
    argv.append(prompt)
    return argv


def invoke_agent(work_dir: Path, config: LoopConfiguration, prompt: str) -> AgentResult:
    """Run the agent to completion and return its combined stdout and stderr.

    Only the inability to start the agent raises; a non-zero exit is returned as data.
    iteration_timeout_minutes is informational and not applied here.
    """
    executable = shutil.which(config.agent_command)
    if executable is None:
        raise ProcessSpawnError(
            f"{config.agent_command} CLI not found. "
            "Please install it from https://github.com/anthropics/claude-code"
        )

    argv = build_agent_argv(config, prompt)
    argv[0] = executable
    try:
        process = subprocess.run(
            argv,
            cwd=work_dir,
            text=True,
            errors="replace",
            capture_output=True,
            check=False,
        )
    except OSError as exc:
        raise ProcessSpawnError(f"Failed to execute {config.agent_command} command: {exc}") from exc

    stdout = process.stdout or ""
    stderr = process.stderr or ""
    if process.returncode != 0 and stderr.strip():
        sys.stderr.write(stderr if stderr.endswith("\n") else stderr + "\n")
        sys.stderr.flush()
    return AgentResult(exit_code=process.returncode, output=f"{stdout}\n{stderr}")
