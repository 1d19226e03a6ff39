"""Git helpers for auto-commit and the status screen.

Every call goes through ``_run_git``, which never raises: a missing ``git`` binary is
reported as exit code 127 and OS errors as exit code 1. Callers turn non-zero exits
into results or ``GitError`` as appropriate.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from rwl.constants import ITERATION_TOKEN
from rwl.models import CommitResult, GitError
from rwl.utils import _compact_log_text


def _run_git(work_dir: Path, args: list[str]) -> subprocess.CompletedProcess[str]:
    command = ["git", "-C", str(work_dir), *args]
    try:
        return subprocess.run(
            command,
            text=True,
            errors="replace",
            capture_output=True,
            check=False,
        )
    except FileNotFoundError as exc:
        return subprocess.CompletedProcess(command, 127, "", f"git not found: {exc}")
    except OSError as exc:
        return subprocess.CompletedProcess(command, 1, "", str(exc))


def is_git_repo(work_dir: Path) -> bool:
    check = _run_git(work_dir, ["rev-parse", "--git-dir"])
    return check.returncode == 0


def has_uncommitted_changes(work_dir: Path) -> bool:
    status = _run_git(work_dir, ["status", "--porcelain"])
    if status.returncode != 0:
        detail = _compact_log_text((status.stderr or status.stdout or "unknown git error").strip())
        raise GitError(f"git status failed: {detail}")
    return bool(status.stdout.strip())


def render_commit_message(template: str, iteration: int) -> str:
    return template.replace(ITERATION_TOKEN, str(iteration))


def _is_nothing_to_commit(process: subprocess.CompletedProcess[str]) -> bool:
    text = f"{process.stdout}\n{process.stderr}".lower()
    return "nothing to commit" in text or "nothing added to commit" in text


def stage_and_commit(work_dir: Path, message: str) -> CommitResult:
    add = _run_git(work_dir, ["add", "-A"])
    if add.returncode != 0:
        detail = _compact_log_text((add.stderr or add.stdout or "git add failed").strip())
        return CommitResult(committed=False, message=message, detail=f"git add failed: {detail}", ok=False)

    commit = _run_git(work_dir, ["commit", "-m", message])
    if commit.returncode != 0:
        if _is_nothing_to_commit(commit):
            return CommitResult(committed=False, message=message, detail="nothing to commit")
        detail = _compact_log_text((commit.stderr or commit.stdout or "git commit failed").strip())
        return CommitResult(committed=False, message=message, detail=f"git commit failed: {detail}", ok=False)

    head = _run_git(work_dir, ["rev-parse", "--short", "HEAD"])
    commit_id = head.stdout.strip() if head.returncode == 0 else "<unknown>"
    return CommitResult(committed=True, message=message, detail=commit_id)


def recent_commits(work_dir: Path, count: int) -> list[str]:
    log = _run_git(work_dir, ["log", "--oneline", f"-{int(count)}"])
    if log.returncode != 0:
        # A fresh repository without commits has no log.
        return []
    return [line for line in log.stdout.splitlines() if line.strip()]
