from __future__ import annotations

from pathlib import Path
from typing import Mapping

from rwl.constants import DEFAULT_PROMPT_TEMPLATE, PROMPT_TOKEN_PATTERN
from rwl.models import LoopConfiguration
from rwl.utils import _prompt_path


def render_prompt(template: str, variables: Mapping[str, str]) -> str:
    """Replace ``{{name}}`` tokens; tokens without a value are left as written."""

    def _substitute(match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        return str(variables[key])

    return PROMPT_TOKEN_PATTERN.sub(_substitute, template)


def load_prompt_template(work_dir: Path) -> str:
    prompt_path = _prompt_path(work_dir)
    if not prompt_path.exists():
        return DEFAULT_PROMPT_TEMPLATE
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return DEFAULT_PROMPT_TEMPLATE
    return text if text.strip() else DEFAULT_PROMPT_TEMPLATE


def build_prompt(work_dir: Path, config: LoopConfiguration, plan_path: Path) -> str:
    return render_prompt(
        load_prompt_template(work_dir),
        {
            "completion_signal": config.completion_signal,
            "plan_path": str(plan_path),
        },
    )
