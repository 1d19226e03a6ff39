from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rwl.config import (
    apply_overrides,
    load_config,
    load_global_config,
    load_local_config,
    save_local_config,
)
from rwl.constants import (
    DEFAULT_PROMPT_TEMPLATE,
    GITIGNORE_CONTENT,
    STATUS_RECENT_ACTIVITY_LINES,
    STATUS_RECENT_COMMITS,
)
from rwl.git_ops import has_uncommitted_changes, is_git_repo, recent_commits
from rwl.loop import LoopRunner
from rwl.models import (
    Complete,
    Error,
    GitError,
    LoopConfiguration,
    LoopOutcome,
    MaxIterationsReached,
    RwlError,
    Stopped,
)
from rwl.progress import ProgressStore
from rwl.utils import (
    _append_log,
    _format_progress_timestamp,
    _local_config_path,
    _progress_path,
    _prompt_path,
    _rwl_dir,
)

OUTCOME_EXIT_CODES = {
    "complete": 0,
    "max_iterations": 1,
    "error": 1,
    "stopped": 130,
}


def _resolve_work_dir(args: argparse.Namespace) -> Path:
    return Path(getattr(args, "work_dir", ".") or ".").expanduser().resolve()


def _resolve_config_arg(args: argparse.Namespace) -> Path | None:
    raw = getattr(args, "config", None)
    return Path(raw).expanduser().resolve() if raw else None


def _print_box(title: str) -> None:
    width = 40
    print("╔" + "═" * width + "╗")
    print("║" + title.center(width) + "║")
    print("╚" + "═" * width + "╝")


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


def _cmd_init(args: argparse.Namespace) -> int:
    work_dir = _resolve_work_dir(args)
    rwl_dir = _rwl_dir(work_dir)

    if rwl_dir.exists():
        print("⚠ .rwl/ already exists. Use `rm -rf .rwl` to reinitialize.")
        return 0

    config_path = _resolve_config_arg(args)
    try:
        config = load_config(work_dir, config_path) if config_path else load_global_config()
        rwl_dir.mkdir(parents=True, exist_ok=True)
        print("✓ Created .rwl/")
        save_local_config(config, work_dir)
        print("✓ Created .rwl/rwl.yml")
        _prompt_path(work_dir).write_text(DEFAULT_PROMPT_TEMPLATE, encoding="utf-8")
        print("✓ Created .rwl/PROMPT.md")
        (rwl_dir / ".gitignore").write_text(GITIGNORE_CONTENT, encoding="utf-8")
        print("✓ Created .rwl/.gitignore")
    except RwlError as exc:
        print(f"rwl init: ERROR {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"rwl init: ERROR failed to write .rwl files: {exc}", file=sys.stderr)
        return 1

    _append_log(work_dir, f"init completed in {work_dir}")

    print()
    print("RWL initialized successfully!")
    print()
    print("Next steps:")
    print("  1. Edit .rwl/rwl.yml to customize settings")
    print("  2. Edit .rwl/PROMPT.md to customize the prompt")
    print("  3. Run `rwl run --plan <path>` to start the loop")
    return 0


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


def _print_banner(config: LoopConfiguration, plan_path: Path) -> None:
    print()
    _print_box("Ralph Wiggum Loop - Starting")
    print()
    print(f"  Plan: {plan_path}")
    print(f"  Model: {config.agent_model}")
    print(f"  Max iterations: {config.max_iterations}")
    print(f"  Timeout: {config.iteration_timeout_minutes} minutes")
    print(f"  Validation: {config.validation_command}")
    print(f"  Quality gates: {len(config.quality_gates)}")
    print()


def _print_outcome(outcome: LoopOutcome) -> None:
    print()
    if isinstance(outcome, Complete):
        _print_box("Loop Complete!")
        print()
        print(f"  Completed in: {outcome.iterations} iterations")
    elif isinstance(outcome, MaxIterationsReached):
        _print_box("Max Iterations Reached")
        print()
        print(f"  Ran: {outcome.iterations} iterations")
        print()
        print("  Consider increasing max_iterations or checking progress.")
    elif isinstance(outcome, Stopped):
        _print_box("Loop Stopped")
        print()
        print(f"  Ran: {outcome.iterations} iterations")
        print(f"  Reason: {outcome.reason}")
    elif isinstance(outcome, Error):
        _print_box("Error")
        print()
        print(f"  Ran: {outcome.iterations} iterations")
        print(f"  Error: {outcome.error}")
    print()


def _cmd_run(args: argparse.Namespace) -> int:
    work_dir = _resolve_work_dir(args)
    if not _rwl_dir(work_dir).exists():
        print("rwl run: ERROR Not initialized. Run `rwl init` first.", file=sys.stderr)
        return 1

    try:
        config = load_local_config(work_dir)
        config = apply_overrides(
            config,
            max_iterations=args.max_iterations,
            model=args.model,
            timeout_minutes=args.timeout,
        )
        save_local_config(config, work_dir)
    except RwlError as exc:
        print(f"rwl run: ERROR {exc}", file=sys.stderr)
        return 1

    plan_path = Path(args.plan).expanduser()
    if not (plan_path if plan_path.is_absolute() else work_dir / plan_path).exists():
        print(f"rwl run: ERROR Plan file not found: {plan_path}", file=sys.stderr)
        return 1

    progress = ProgressStore(_progress_path(work_dir))
    try:
        if not progress.exists():
            progress.initialize(plan_path)
    except RwlError as exc:
        print(f"rwl run: ERROR {exc}", file=sys.stderr)
        return 1

    _print_banner(config, plan_path)

    runner = LoopRunner(
        work_dir,
        plan_path,
        config_path=_local_config_path(work_dir),
        verbose=bool(args.verbose),
    )
    try:
        outcome = runner.run()
    except RwlError as exc:
        print(f"rwl run: ERROR {exc}", file=sys.stderr)
        return 1

    _print_outcome(outcome)
    return OUTCOME_EXIT_CODES.get(outcome.kind, 1)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


def _cmd_status(args: argparse.Namespace) -> int:
    work_dir = _resolve_work_dir(args)
    if not _rwl_dir(work_dir).exists():
        print("⚠ Not initialized. Run `rwl init` first.")
        return 0

    print()
    _print_box("RWL Status")
    print()

    try:
        config = load_local_config(work_dir)
    except RwlError as exc:
        print(f"rwl status: ERROR {exc}", file=sys.stderr)
        return 1

    print("Configuration:")
    print(f"  Model: {config.agent_model}")
    print(f"  Max iterations: {config.max_iterations}")
    print(f"  Timeout: {config.iteration_timeout_minutes} minutes")
    print(f"  Validation: {config.validation_command}")
    print(f"  Quality gates: {len(config.quality_gates)}")
    print()

    store = ProgressStore(_progress_path(work_dir))
    print("Progress:")
    if not store.exists():
        print("  · No progress yet. Run `rwl run --plan <path>` to start.")
        print()
    else:
        try:
            summary = store.read()
            recent = store.recent_activity(STATUS_RECENT_ACTIVITY_LINES)
        except RwlError as exc:
            print(f"rwl status: ERROR {exc}", file=sys.stderr)
            return 1
        if summary.started is not None:
            print(f"  Started: {_format_progress_timestamp(summary.started)}")
        if summary.plan_reference:
            print(f"  Plan: {summary.plan_reference}")
        print(f"  Iterations: {summary.iteration_count}")
        if summary.last_status:
            print(f"  Status: {summary.last_status}")
        print()
        if recent:
            print("Recent Activity:")
            for line in recent:
                indent = "  " if line.startswith("##") else "    "
                print(f"{indent}{line}")
            print()

    if is_git_repo(work_dir):
        print("Git Status:")
        try:
            dirty = has_uncommitted_changes(work_dir)
        except GitError as exc:
            print(f"  ⚠ {exc}")
        else:
            print("  ⚠ Uncommitted changes" if dirty else "  ✓ Clean")
        commits = recent_commits(work_dir, STATUS_RECENT_COMMITS)
        if commits:
            print()
            print("Recent Commits:")
            for commit in commits:
                print(f"  {commit}")
        print()

    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rwl",
        description="Ralph Wiggum Loop - Iterative AI-assisted development",
        epilog="Logs are written to: .rwl/logs/rwl.log",
    )
    parser.add_argument("-c", "--config", default=None, help="Path to config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--work-dir",
        default=".",
        help="Project directory containing .rwl/ (default: current directory)",
    )
    subparsers = parser.add_subparsers(dest="command")

    init = subparsers.add_parser("init", help="Initialize .rwl/ in the project directory")
    init.set_defaults(handler=_cmd_init)

    run = subparsers.add_parser("run", help="Run the loop")
    run.add_argument("-p", "--plan", required=True, help="Path to the implementation plan file")
    run.add_argument(
        "-m",
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum number of iterations (overrides config)",
    )
    run.add_argument("-M", "--model", default=None, help="LLM model to use (overrides config)")
    run.add_argument(
        "-t",
        "--timeout",
        type=int,
        default=None,
        help="Iteration timeout in minutes (overrides config; informational)",
    )
    run.set_defaults(handler=_cmd_run)

    status = subparsers.add_parser("status", help="Show current progress")
    status.set_defaults(handler=_cmd_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2
    return int(handler(args))
