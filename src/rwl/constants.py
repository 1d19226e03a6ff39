"""rwl constants: on-disk layout, defaults, progress markers, and templates."""

from __future__ import annotations

import re

RWL_DIR_NAME = ".rwl"
CONFIG_FILE_NAME = "rwl.yml"
PROGRESS_FILE_NAME = "progress.txt"
PROMPT_FILE_NAME = "PROMPT.md"
LOG_RELATIVE_PATH = ("logs", "rwl.log")

ITERATION_TOKEN = "{iteration}"

DEFAULT_MAX_ITERATIONS = 100
DEFAULT_ITERATION_TIMEOUT_MINUTES = 10
DEFAULT_SLEEP_BETWEEN_SECS = 2
DEFAULT_COMPLETION_SIGNAL = "<promise>COMPLETE</promise>"
DEFAULT_VALIDATION_COMMAND = "otto ci"
DEFAULT_AGENT_MODEL = "opus"
DEFAULT_AGENT_COMMAND = "claude"
DEFAULT_DANGEROUSLY_SKIP_PERMISSIONS = True
DEFAULT_AUTO_COMMIT = True
DEFAULT_COMMIT_MESSAGE_TEMPLATE = "rwl: iteration {iteration}"
DEFAULT_QUALITY_GATES = (
    {"name": "no_dead_code", "command": "! grep -rn 'allow(dead_code)' src/"},
    {"name": "no_todos", "command": "! grep -rn 'TODO' src/"},
)

GATE_OUTPUT_DISPLAY_LINES = 5
STATUS_RECENT_ACTIVITY_LINES = 10
STATUS_RECENT_COMMITS = 5

# Progress log layout
PROGRESS_HEADER_TITLE = "# RWL Progress Log"
PROGRESS_HEADER_STARTED = "# Started:"
PROGRESS_HEADER_PLAN = "# Plan:"
PROGRESS_HEADER_RULE = "# " + "-" * 40
PROGRESS_RECORD_MARKER = "## Iteration"
PROGRESS_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"
PROGRESS_RECORD_MARKER_PATTERN = re.compile(r"^## Iteration\b")
PROGRESS_FIELD_PATTERN = re.compile(r"^(Timestamp|Validation|Promise|Summary):\s?(.*)$")

PROMPT_TOKEN_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")

SUMMARY_COMPLETE = "Complete"
SUMMARY_WAITING = "Validation passed, waiting for completion"
SUMMARY_VALIDATION_FAILED = "Validation failed"

GITIGNORE_CONTENT = """# RWL generated files
progress.txt
logs/
"""

DEFAULT_PROMPT_TEMPLATE = """# Ralph Wiggum Loop - ONE TASK THEN EXIT

You are in a Ralph Wiggum loop. You have NO MEMORY of previous runs.
Your state persists ONLY in `.rwl/progress.txt`.

## CRITICAL RULES

1. **READ .rwl/progress.txt FIRST** - It tells you what was done
2. **DO ONE SMALL THING** - Not a phase. One file, one fix, one test.
3. **EXIT IMMEDIATELY** - Do not retry errors. Just exit.

The loop will restart you with fresh context. That's the whole point.
Validation runs EXTERNALLY - you do NOT run tests or validation.

---

## Your Workflow

1. Read state: `cat .rwl/progress.txt && git log --oneline -10`
2. Do ONE small task
3. Record what you did in progress.txt
4. If ALL work is complete, signal: `{{completion_signal}}`
5. EXIT - do nothing else

---

## Implementation Plan

Read `{{plan_path}}` for what to build.
Each phase lists files and validation criteria.

## Now: Read progress.txt and do ONE thing
"""
