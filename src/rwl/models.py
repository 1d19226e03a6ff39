"""rwl data models: exceptions, dataclasses, and coercion helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping


def _coerce_bool(value: Any, *, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "on"}
    return bool(value) if value is not None else default


def _coerce_positive_int(value: Any, *, default: int) -> int:
    try:
        parsed = int(value)
    except Exception:
        return default
    return parsed if parsed > 0 else default


def _coerce_non_negative_int(value: Any, *, default: int) -> int:
    try:
        parsed = int(value)
    except Exception:
        return default
    return parsed if parsed >= 0 else default


class RwlError(RuntimeError):
    """Base class for errors that abort an rwl command."""


class ConfigurationError(RwlError):
    """Raised when configuration is malformed or a quality gate is ambiguous."""


class ProgressStoreError(RwlError):
    """Raised when the progress log cannot be read or written."""


class ProcessSpawnError(RwlError):
    """Raised when the agent process cannot be started at all."""


class GitError(RwlError):
    """Raised when git state cannot be inspected."""


@dataclass(frozen=True)
class QualityGate:
    """A named check backed by exactly one of an inline command or a script path."""

    name: str
    kind: str  # "command" | "script"
    target: str

    @classmethod
    def from_fields(
        cls,
        name: str,
        *,
        command: str | None = None,
        script: str | None = None,
    ) -> "QualityGate":
        has_command = command is not None
        has_script = script is not None
        if has_command and has_script:
            raise ConfigurationError(f"Gate '{name}' has both command and script")
        if not has_command and not has_script:
            raise ConfigurationError(f"Gate '{name}' has neither command nor script")
        if has_command:
            return cls(name=name, kind="command", target=str(command))
        return cls(name=name, kind="script", target=str(script))

    def to_mapping(self) -> dict[str, str]:
        return {"name": self.name, self.kind: self.target}


@dataclass(frozen=True)
class LoopConfiguration:
    max_iterations: int
    iteration_timeout_minutes: int
    sleep_between_secs: int
    completion_signal: str
    validation_command: str
    quality_gates: tuple[QualityGate, ...]
    agent_model: str
    agent_command: str
    dangerously_skip_permissions: bool
    auto_commit: bool
    commit_message_template: str


@dataclass(frozen=True)
class IterationRecord:
    iteration: int
    validation_passed: bool
    completion_signal_found: bool
    summary: str
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ProgressSummary:
    started: datetime | None
    plan_reference: str | None
    records: tuple[IterationRecord, ...] = ()

    @property
    def iteration_count(self) -> int:
        return len(self.records)

    @property
    def last_status(self) -> str | None:
        if not self.records:
            return None
        return f"{self.iteration_count} iterations completed"


@dataclass(frozen=True)
class AgentResult:
    exit_code: int
    output: str


@dataclass(frozen=True)
class ValidationResult:
    passed: bool
    output: str
    exit_code: int


@dataclass(frozen=True)
class GateResult:
    name: str
    command: str
    passed: bool
    output: str
    exit_code: int


@dataclass(frozen=True)
class QualityGateReport:
    all_passed: bool
    results: tuple[GateResult, ...]

    @property
    def failed(self) -> tuple[GateResult, ...]:
        return tuple(result for result in self.results if not result.passed)


@dataclass(frozen=True)
class CommitResult:
    committed: bool
    message: str
    detail: str = ""
    ok: bool = True


# ---------------------------------------------------------------------------
# Loop outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoopOutcome:
    iterations: int

    @property
    def kind(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class Complete(LoopOutcome):
    @property
    def kind(self) -> str:
        return "complete"


@dataclass(frozen=True)
class MaxIterationsReached(LoopOutcome):
    @property
    def kind(self) -> str:
        return "max_iterations"


@dataclass(frozen=True)
class Stopped(LoopOutcome):
    reason: str = ""

    @property
    def kind(self) -> str:
        return "stopped"


@dataclass(frozen=True)
class Error(LoopOutcome):
    error: str = ""

    @property
    def kind(self) -> str:
        return "error"


def _outcome_payload(outcome: LoopOutcome) -> dict[str, Any]:
    payload: dict[str, Any] = {"kind": outcome.kind, "iterations": outcome.iterations}
    if isinstance(outcome, Stopped):
        payload["reason"] = outcome.reason
    if isinstance(outcome, Error):
        payload["error"] = outcome.error
    return payload


def _require_mapping(value: Any, *, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{field_name} must be a mapping")
    return value
