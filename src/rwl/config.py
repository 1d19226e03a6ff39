from __future__ import annotations

import copy
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from rwl.constants import (
    DEFAULT_AGENT_COMMAND,
    DEFAULT_AGENT_MODEL,
    DEFAULT_AUTO_COMMIT,
    DEFAULT_COMMIT_MESSAGE_TEMPLATE,
    DEFAULT_COMPLETION_SIGNAL,
    DEFAULT_DANGEROUSLY_SKIP_PERMISSIONS,
    DEFAULT_ITERATION_TIMEOUT_MINUTES,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_QUALITY_GATES,
    DEFAULT_SLEEP_BETWEEN_SECS,
    DEFAULT_VALIDATION_COMMAND,
)
from rwl.models import (
    ConfigurationError,
    LoopConfiguration,
    QualityGate,
    _coerce_bool,
    _coerce_non_negative_int,
    _coerce_positive_int,
    _require_mapping,
)
from rwl.utils import _append_log, _global_config_path, _local_config_path


def _default_config_mapping() -> dict[str, Any]:
    return {
        "loop": {
            "max_iterations": DEFAULT_MAX_ITERATIONS,
            "iteration_timeout_minutes": DEFAULT_ITERATION_TIMEOUT_MINUTES,
            "sleep_between_secs": DEFAULT_SLEEP_BETWEEN_SECS,
            "completion_signal": DEFAULT_COMPLETION_SIGNAL,
        },
        "validation": {"command": DEFAULT_VALIDATION_COMMAND},
        "quality_gates": [dict(gate) for gate in DEFAULT_QUALITY_GATES],
        "llm": {
            "model": DEFAULT_AGENT_MODEL,
            "command": DEFAULT_AGENT_COMMAND,
            "dangerously_skip_permissions": DEFAULT_DANGEROUSLY_SKIP_PERMISSIONS,
        },
        "git": {
            "auto_commit": DEFAULT_AUTO_COMMIT,
            "commit_message_template": DEFAULT_COMMIT_MESSAGE_TEMPLATE,
        },
    }


def _deep_merge_dict(base: dict[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge_dict(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def parse_quality_gate(raw: Any, *, index: int = 0) -> QualityGate:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"quality_gates[{index}] must be a mapping with name and command|script")
    name = str(raw.get("name", "")).strip()
    if not name:
        raise ConfigurationError(f"quality_gates[{index}].name must be a non-empty string")
    command = raw.get("command")
    script = raw.get("script")
    return QualityGate.from_fields(
        name,
        command=None if command is None else str(command),
        script=None if script is None else str(script),
    )


def _parse_quality_gates(raw: Any) -> tuple[QualityGate, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigurationError("quality_gates must be a list")
    return tuple(parse_quality_gate(entry, index=idx) for idx, entry in enumerate(raw))


def config_from_mapping(payload: Mapping[str, Any]) -> LoopConfiguration:
    """Build a snapshot from a YAML document layered over the defaults."""
    merged = _deep_merge_dict(_default_config_mapping(), payload)
    loop = _require_mapping(merged.get("loop"), field_name="loop")
    validation = _require_mapping(merged.get("validation"), field_name="validation")
    llm = _require_mapping(merged.get("llm"), field_name="llm")
    git = _require_mapping(merged.get("git"), field_name="git")

    completion_signal = str(loop.get("completion_signal", DEFAULT_COMPLETION_SIGNAL) or "")
    if not completion_signal.strip():
        raise ConfigurationError("loop.completion_signal must be a non-empty string")
    agent_command = str(llm.get("command") or "").strip() or DEFAULT_AGENT_COMMAND
    commit_message_template = git.get("commit_message_template")

    return LoopConfiguration(
        max_iterations=_coerce_positive_int(loop.get("max_iterations"), default=DEFAULT_MAX_ITERATIONS),
        iteration_timeout_minutes=_coerce_non_negative_int(
            loop.get("iteration_timeout_minutes"), default=DEFAULT_ITERATION_TIMEOUT_MINUTES
        ),
        sleep_between_secs=_coerce_non_negative_int(
            loop.get("sleep_between_secs"), default=DEFAULT_SLEEP_BETWEEN_SECS
        ),
        completion_signal=completion_signal,
        validation_command=str(validation.get("command") or ""),
        quality_gates=_parse_quality_gates(merged.get("quality_gates")),
        agent_model=str(llm.get("model") or DEFAULT_AGENT_MODEL),
        agent_command=agent_command,
        dangerously_skip_permissions=_coerce_bool(
            llm.get("dangerously_skip_permissions"), default=DEFAULT_DANGEROUSLY_SKIP_PERMISSIONS
        ),
        auto_commit=_coerce_bool(git.get("auto_commit"), default=DEFAULT_AUTO_COMMIT),
        commit_message_template=(
            DEFAULT_COMMIT_MESSAGE_TEMPLATE if commit_message_template is None else str(commit_message_template)
        ),
    )


def config_to_mapping(config: LoopConfiguration) -> dict[str, Any]:
    return {
        "loop": {
            "max_iterations": config.max_iterations,
            "iteration_timeout_minutes": config.iteration_timeout_minutes,
            "sleep_between_secs": config.sleep_between_secs,
            "completion_signal": config.completion_signal,
        },
        "validation": {"command": config.validation_command},
        "quality_gates": [gate.to_mapping() for gate in config.quality_gates],
        "llm": {
            "model": config.agent_model,
            "command": config.agent_command,
            "dangerously_skip_permissions": config.dangerously_skip_permissions,
        },
        "git": {
            "auto_commit": config.auto_commit,
            "commit_message_template": config.commit_message_template,
        },
    }


def default_config() -> LoopConfiguration:
    return config_from_mapping({})


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"failed to read config file {path}: {exc}") from exc
    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"failed to parse config file {path}: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigurationError(f"{path} must contain a YAML mapping")
    return payload


def load_config_file(path: Path) -> LoopConfiguration:
    payload = copy.deepcopy(_load_yaml_mapping(path))
    # A file that omits quality_gates declares none; the default gates apply only without a file.
    payload.setdefault("quality_gates", [])
    return config_from_mapping(payload)


def load_config(work_dir: Path, config_path: Path | None = None) -> LoopConfiguration:
    """Resolve configuration: explicit path, then local, then global, then defaults.

    An explicit path must load. Broken local/global files are logged and skipped.
    """
    if config_path is not None:
        return load_config_file(config_path)

    for candidate in (_local_config_path(work_dir), _global_config_path()):
        if not candidate.exists():
            continue
        try:
            config = load_config_file(candidate)
        except ConfigurationError as exc:
            _append_log(work_dir, f"config load failed path={candidate}: {exc}")
            continue
        _append_log(work_dir, f"config loaded from {candidate}")
        return config

    _append_log(work_dir, "no config file found, using defaults")
    return default_config()


def load_global_config() -> LoopConfiguration:
    global_path = _global_config_path()
    if global_path.exists():
        return load_config_file(global_path)
    return default_config()


def load_local_config(work_dir: Path) -> LoopConfiguration:
    local_path = _local_config_path(work_dir)
    if not local_path.exists():
        raise ConfigurationError(f"No local config found at {local_path}")
    return load_config_file(local_path)


def save_config(config: LoopConfiguration, path: Path) -> None:
    text = yaml.safe_dump(config_to_mapping(config), sort_keys=False, allow_unicode=True)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"failed to write config file {path}: {exc}") from exc


def save_local_config(config: LoopConfiguration, work_dir: Path) -> Path:
    local_path = _local_config_path(work_dir)
    save_config(config, local_path)
    return local_path


def apply_overrides(
    config: LoopConfiguration,
    *,
    max_iterations: int | None = None,
    model: str | None = None,
    timeout_minutes: int | None = None,
) -> LoopConfiguration:
    updates: dict[str, Any] = {}
    if max_iterations is not None:
        if max_iterations <= 0:
            raise ConfigurationError("--max-iterations must be > 0")
        updates["max_iterations"] = int(max_iterations)
    if model is not None and model.strip():
        updates["agent_model"] = model.strip()
    if timeout_minutes is not None:
        if timeout_minutes < 0:
            raise ConfigurationError("--timeout must be >= 0")
        updates["iteration_timeout_minutes"] = int(timeout_minutes)
    return replace(config, **updates) if updates else config
