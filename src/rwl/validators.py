"""rwl validators: the per-iteration validation command and the final quality gates."""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Iterable

from rwl.constants import GATE_OUTPUT_DISPLAY_LINES
from rwl.models import GateResult, QualityGate, QualityGateReport, ValidationResult
from rwl.utils import _tail_lines


def _run_shell_command(work_dir: Path, command: str) -> ValidationResult:
    try:
        process = subprocess.run(
            command,
            cwd=work_dir,
            shell=True,
            text=True,
            errors="replace",
            capture_output=True,
            check=False,
        )
    except OSError as exc:
        return ValidationResult(passed=False, output=f"failed to run command: {exc}", exit_code=-1)
    combined = f"{process.stdout}\n{process.stderr}"
    return ValidationResult(
        passed=process.returncode == 0,
        output=combined,
        exit_code=process.returncode,
    )


def run_validation(work_dir: Path, command: str) -> ValidationResult:
    return _run_shell_command(work_dir, command)


def resolve_gate_command(gate: QualityGate) -> str:
    if gate.kind == "command":
        return gate.target
    return f"bash {shlex.quote(gate.target)}"


def run_quality_gates(work_dir: Path, gates: Iterable[QualityGate]) -> QualityGateReport:
    """Run every gate in order; a failing gate never prevents the later ones from running."""
    results: list[GateResult] = []
    for gate in gates:
        command = resolve_gate_command(gate)
        outcome = _run_shell_command(work_dir, command)
        results.append(
            GateResult(
                name=gate.name,
                command=command,
                passed=outcome.passed,
                output=outcome.output,
                exit_code=outcome.exit_code,
            )
        )
    return QualityGateReport(
        all_passed=all(result.passed for result in results),
        results=tuple(results),
    )


def format_quality_gate_report(
    report: QualityGateReport, *, max_lines: int = GATE_OUTPUT_DISPLAY_LINES
) -> str:
    lines = ["Quality Gates:"]
    for result in report.results:
        glyph = "✓" if result.passed else "✗"
        lines.append(f"  {glyph} {result.name}")
        if result.passed:
            continue
        output_lines = [line for line in result.output.splitlines() if line.strip()]
        for line in output_lines[:max_lines]:
            lines.append(f"    {line}")
    lines.append("")
    lines.append("All quality gates passed!" if report.all_passed else "Some quality gates failed.")
    return "\n".join(lines)


def format_validation_result(result: ValidationResult, *, max_lines: int = GATE_OUTPUT_DISPLAY_LINES) -> str:
    if result.passed:
        return "✓ Validation passed"
    lines = [f"✗ Validation failed (exit code: {result.exit_code})"]
    for line in _tail_lines(result.output, max_lines):
        lines.append(f"    {line}")
    return "\n".join(lines)
