from __future__ import annotations

from pathlib import Path

from rwl.config import default_config
from rwl.constants import DEFAULT_PROMPT_TEMPLATE
from rwl.prompts import build_prompt, load_prompt_template, render_prompt


def test_render_prompt_replaces_known_tokens_and_keeps_unknown() -> None:
    rendered = render_prompt(
        "signal={{ completion_signal }} plan={{plan_path}} other={{missing}}",
        {"completion_signal": "DONE", "plan_path": "plan.md"},
    )

    assert rendered == "signal=DONE plan=plan.md other={{missing}}"


def test_load_prompt_template_defaults_without_file(tmp_path: Path) -> None:
    assert load_prompt_template(tmp_path) == DEFAULT_PROMPT_TEMPLATE


def test_load_prompt_template_ignores_blank_file(tmp_path: Path) -> None:
    prompt_path = tmp_path / ".rwl" / "PROMPT.md"
    prompt_path.parent.mkdir(parents=True)
    prompt_path.write_text("  \n", encoding="utf-8")

    assert load_prompt_template(tmp_path) == DEFAULT_PROMPT_TEMPLATE


def test_build_prompt_uses_project_template(tmp_path: Path) -> None:
    prompt_path = tmp_path / ".rwl" / "PROMPT.md"
    prompt_path.parent.mkdir(parents=True)
    prompt_path.write_text("Follow {{plan_path}} and print {{completion_signal}}.\n", encoding="utf-8")

    prompt = build_prompt(tmp_path, default_config(), Path("docs/plan.md"))

    assert prompt == "Follow docs/plan.md and print <promise>COMPLETE</promise>.\n"


def test_default_prompt_mentions_signal_and_plan(tmp_path: Path) -> None:
    prompt = build_prompt(tmp_path, default_config(), Path("plan.md"))

    assert "<promise>COMPLETE</promise>" in prompt
    assert "Read `plan.md`" in prompt
    assert "{{" not in prompt
