"""rwl utility functions: paths, timestamps, and the run log."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

from rwl.constants import (
    CONFIG_FILE_NAME,
    LOG_RELATIVE_PATH,
    PROGRESS_FILE_NAME,
    PROGRESS_TIMESTAMP_FORMAT,
    PROMPT_FILE_NAME,
    RWL_DIR_NAME,
)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def _rwl_dir(work_dir: Path) -> Path:
    return work_dir / RWL_DIR_NAME


def _local_config_path(work_dir: Path) -> Path:
    return _rwl_dir(work_dir) / CONFIG_FILE_NAME


def _global_config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    root = Path(base).expanduser() if base else Path.home() / ".config"
    return root / "rwl"


def _global_config_path() -> Path:
    return _global_config_dir() / CONFIG_FILE_NAME


def _progress_path(work_dir: Path) -> Path:
    return _rwl_dir(work_dir) / PROGRESS_FILE_NAME


def _prompt_path(work_dir: Path) -> Path:
    return _rwl_dir(work_dir) / PROMPT_FILE_NAME


def _log_path(work_dir: Path) -> Path:
    return _rwl_dir(work_dir).joinpath(*LOG_RELATIVE_PATH)


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    return (
        datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
    )


def _format_progress_timestamp(value: datetime | None = None) -> str:
    moment = value or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime(PROGRESS_TIMESTAMP_FORMAT)


def _parse_progress_timestamp(value: str) -> datetime | None:
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = datetime.strptime(text, PROGRESS_TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def _compact_log_text(text: str, limit: int = 240) -> str:
    compact = " ".join(text.strip().split())
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit]}..."


def _tail_lines(text: str, limit: int) -> list[str]:
    lines = [line for line in text.splitlines() if line.strip()]
    return lines[-limit:] if limit > 0 else []


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def _append_log(work_dir: Path, message: str) -> None:
    log_path = _log_path(work_dir)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write(f"{_utc_now()} {message}\n")
