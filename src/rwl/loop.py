"""The rwl iteration loop: invoke the agent, validate, record, and decide whether to stop.

Each iteration works on a configuration snapshot loaded at its start, so an operator
can edit ``.rwl/rwl.yml`` while a long run is in progress. Every iteration whose agent
invocation succeeded is written to the progress log, whatever its result, because the
next run resumes at ``recorded iterations + 1``.

Per iteration, in order:

1. reload the config snapshot (keep the previous one if the reload fails)
2. render the prompt
3. run the agent; failing to *start* it ends the run with ``Error``
4. auto-commit when enabled and the work tree is dirty
5. run the validation command
6. look for the completion signal in the agent output
7. append the iteration record
8. when validation passed and the signal was found, run all quality gates and
   finish with ``Complete`` if they all pass
9. sleep before the next iteration
"""

from __future__ import annotations

import time
from pathlib import Path

from rwl.config import load_config, load_config_file
from rwl.constants import SUMMARY_COMPLETE, SUMMARY_VALIDATION_FAILED, SUMMARY_WAITING
from rwl.git_ops import (
    has_uncommitted_changes,
    is_git_repo,
    render_commit_message,
    stage_and_commit,
)
from rwl.models import (
    Complete,
    ConfigurationError,
    Error,
    GitError,
    IterationRecord,
    LoopConfiguration,
    LoopOutcome,
    MaxIterationsReached,
    ProcessSpawnError,
    Stopped,
    _outcome_payload,
)
from rwl.progress import ProgressStore
from rwl.prompts import build_prompt
from rwl.runners import invoke_agent
from rwl.utils import _append_log, _compact_log_text, _progress_path
from rwl.validators import (
    format_quality_gate_report,
    format_validation_result,
    run_quality_gates,
    run_validation,
)


def _summarize_iteration(*, validation_passed: bool, signal_found: bool, agent_exit_code: int) -> str:
    if validation_passed and signal_found:
        summary = SUMMARY_COMPLETE
    elif validation_passed:
        summary = SUMMARY_WAITING
    else:
        summary = SUMMARY_VALIDATION_FAILED
    if agent_exit_code != 0:
        summary = f"{summary} (agent exit {agent_exit_code})"
    return summary


def _contains_completion_signal(output: str, signal: str) -> bool:
    return bool(signal) and signal in output


class LoopRunner:
    def __init__(
        self,
        work_dir: Path,
        plan_path: Path,
        *,
        config_path: Path | None = None,
        verbose: bool = False,
    ) -> None:
        self.work_dir = work_dir
        self.plan_path = plan_path
        self.config_path = config_path
        self.verbose = verbose
        self.progress = ProgressStore(_progress_path(work_dir))

    def _load_snapshot(self) -> LoopConfiguration:
        if self.config_path is not None:
            return load_config_file(self.config_path)
        return load_config(self.work_dir)

    def _reload_snapshot(self, previous: LoopConfiguration) -> LoopConfiguration:
        try:
            return self._load_snapshot()
        except ConfigurationError as exc:
            _append_log(self.work_dir, f"config reload failed, keeping previous snapshot: {exc}")
            return previous

    def run(self) -> LoopOutcome:
        config = self._load_snapshot()

        if not self.progress.exists():
            self.progress.initialize(self.plan_path)
        start = self.progress.iteration_count() + 1
        last_recorded = start - 1
        _append_log(
            self.work_dir,
            f"loop start resume_at={start} max_iterations={config.max_iterations} plan={self.plan_path}",
        )

        iteration = start
        try:
            while iteration <= config.max_iterations:
                config = self._reload_snapshot(config)
                if iteration > config.max_iterations:
                    break

                prompt = build_prompt(self.work_dir, config, self.plan_path)

                print()
                print(f"→ Running iteration {iteration}/{config.max_iterations}...")
                _append_log(self.work_dir, f"agent start iteration={iteration} model={config.agent_model}")
                try:
                    agent = invoke_agent(self.work_dir, config, prompt)
                except ProcessSpawnError as exc:
                    _append_log(self.work_dir, f"agent spawn failed iteration={iteration}: {exc}")
                    return self._finish(Error(iterations=iteration - 1, error=str(exc)))
                _append_log(self.work_dir, f"agent exit iteration={iteration} returncode={agent.exit_code}")

                if config.auto_commit:
                    self._auto_commit(iteration, config)

                validation = run_validation(self.work_dir, config.validation_command)
                _append_log(
                    self.work_dir,
                    f"validation iteration={iteration} passed={validation.passed} exit={validation.exit_code}",
                )
                signal_found = _contains_completion_signal(agent.output, config.completion_signal)

                record = IterationRecord(
                    iteration=iteration,
                    validation_passed=validation.passed,
                    completion_signal_found=signal_found,
                    summary=_summarize_iteration(
                        validation_passed=validation.passed,
                        signal_found=signal_found,
                        agent_exit_code=agent.exit_code,
                    ),
                )
                self.progress.append(record)
                last_recorded = iteration
                self._print_iteration_status(record)
                if self.verbose and not validation.passed:
                    print(format_validation_result(validation))

                if validation.passed and signal_found:
                    print()
                    print("✓ Validation passed and completion promise found!")
                    print("→ Running quality gates...")
                    report = run_quality_gates(self.work_dir, config.quality_gates)
                    for result in report.results:
                        _append_log(
                            self.work_dir,
                            f"quality gate iteration={iteration} name={result.name} passed={result.passed}",
                        )
                    print()
                    print(format_quality_gate_report(report))
                    if report.all_passed:
                        return self._finish(Complete(iterations=iteration))
                    print("⚠ Quality gates failed, continuing loop...")

                if iteration < config.max_iterations and config.sleep_between_secs > 0:
                    time.sleep(config.sleep_between_secs)
                iteration += 1
        except KeyboardInterrupt:
            return self._finish(Stopped(iterations=last_recorded, reason="interrupted by operator"))

        return self._finish(MaxIterationsReached(iterations=config.max_iterations))

    def _auto_commit(self, iteration: int, config: LoopConfiguration) -> None:
        if not is_git_repo(self.work_dir):
            return
        try:
            dirty = has_uncommitted_changes(self.work_dir)
        except GitError as exc:
            _append_log(self.work_dir, f"auto_commit skipped iteration={iteration}: {exc}")
            print(f"⚠ Auto-commit skipped: {exc}")
            return
        if not dirty:
            return

        message = render_commit_message(config.commit_message_template, iteration)
        result = stage_and_commit(self.work_dir, message)
        if result.committed:
            _append_log(self.work_dir, f"auto_commit created commit {result.detail}: {message}")
            print(f"✓ Committed changes: {message}")
        elif result.ok:
            _append_log(self.work_dir, f"auto_commit skipped iteration={iteration}: {result.detail}")
        else:
            _append_log(self.work_dir, f"auto_commit failed iteration={iteration}: {result.detail}")
            print(f"⚠ Auto-commit failed: {_compact_log_text(result.detail)}")

    def _print_iteration_status(self, record: IterationRecord) -> None:
        validation_status = "✓" if record.validation_passed else "✗"
        promise_status = "✓" if record.completion_signal_found else "-"
        print(f"  Validation: {validation_status}  Promise: {promise_status}  {record.summary}")

    def _finish(self, outcome: LoopOutcome) -> LoopOutcome:
        _append_log(self.work_dir, f"loop finished {_outcome_payload(outcome)}")
        return outcome
