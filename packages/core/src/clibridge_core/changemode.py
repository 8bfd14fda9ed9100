"""Change mode: ask a backend for exact OLD/NEW replacement blocks.

The request side wraps the user's prompt in formatting instructions; the
response side parses ``**FILE: name:line**`` blocks back out and renders them
as ready-to-apply edit instructions.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SUMMARY_THRESHOLD = 5

_FILE_REF = re.compile(r"file:(\S+)")

_EDIT_BLOCK = re.compile(
    r"\*\*FILE:\s*(?P<file>[^\n*]+?):(?P<line>\d+)\*\*[ \t]*\n"
    r"(?:```[^\n]*\n)?"
    r"OLD:[ \t]*\n(?P<old>.*?)\n"
    r"NEW:[ \t]*\n?(?P<new>.*?)"
    r"(?:\n?```|(?=\n\*\*FILE:)|\Z)",
    re.DOTALL,
)

_OUTPUT_FORMAT = """OUTPUT FORMAT (follow exactly):
**FILE: [filename]:[line_number]**
```
OLD:
[exact code to be replaced{detail}]
NEW:
[new code to insert{new_detail}]
```"""


@dataclass
class ChangeModeEdit:
    filename: str
    line: int
    old_code: str
    new_code: str


def full_instructions(prompt: str) -> str:
    """Detailed change-mode instructions, for backends that read files themselves."""
    output_format = _OUTPUT_FORMAT.format(
        detail=" - must match file content precisely",
        new_detail=" - complete and functional",
    )
    return f"""
[CHANGEMODE INSTRUCTIONS]
You are producing code modifications for an automated tool that applies them by exact text replacement.

Work through it like this:
1. Read every provided file in full
2. Find each location the request below needs changed
3. Emit one block per change using the format below

Rules for every block:
1. OLD must be copied verbatim from the file, whitespace and indentation included
2. OLD must occur exactly once in the file; add neighbouring lines until it does
3. Always use whole lines, never fragments of a line
4. NEW replaces OLD entirely and must be complete, working code
5. The line number is where OLD starts

{output_format}

Example:
**FILE: src/config/loader.py:42**
```
OLD:
def load(path):
    return open(path).read()
NEW:
def load(path):
    with open(path) as f:
        return f.read()
```

USER REQUEST:
{prompt}
"""


def condensed_instructions(prompt: str) -> str:
    """Short change-mode instructions, used when file content is already inlined."""
    output_format = _OUTPUT_FORMAT.format(detail="", new_detail="")
    return f"""
[CHANGEMODE INSTRUCTIONS]
You are producing code modifications that will be applied by exact text replacement.

{output_format}

Rules:
1. OLD must match the file content exactly
2. Include enough context for OLD to be unique
3. NEW must be complete, working code

USER REQUEST:
{prompt}
"""


def rewrite_file_refs(prompt: str) -> str:
    """Turn ``file:path`` mentions into ``@path`` references."""
    return _FILE_REF.sub(r"@\1", prompt)


def parse_change_mode_output(text: str) -> list[ChangeModeEdit]:
    edits = [
        ChangeModeEdit(
            filename=m.group("file").strip(),
            line=int(m.group("line")),
            old_code=m.group("old"),
            new_code=m.group("new"),
        )
        for m in _EDIT_BLOCK.finditer(text)
    ]
    logger.debug("Parsed %d change-mode edit(s)", len(edits))
    return edits


def validate_edits(edits: list[ChangeModeEdit]) -> list[str]:
    """Return a list of problems; empty means every edit is usable."""
    errors = []
    for i, edit in enumerate(edits, start=1):
        if not edit.filename:
            errors.append(f"Edit {i}: missing filename")
        if not edit.old_code.strip():
            errors.append(f"Edit {i} ({edit.filename}): OLD section is empty")
        elif edit.old_code == edit.new_code:
            errors.append(f"Edit {i} ({edit.filename}): OLD and NEW are identical")
    return errors


def format_change_mode_response(edits: list[ChangeModeEdit]) -> str:
    plural = "" if len(edits) == 1 else "s"
    parts = [
        "[CHANGEMODE OUTPUT]\n\n"
        f"{len(edits)} modification{plural} prepared. Each one is an exact text replacement "
        "against the current file contents and can be applied without re-reading the file.\n"
    ]
    for i, edit in enumerate(edits, start=1):
        parts.append(
            f"### Edit {i}: {edit.filename}:{edit.line}\n\n"
            f"Replace this exact text:\n```\n{edit.old_code}\n```\n\n"
            f"With this text:\n```\n{edit.new_code}\n```\n"
        )
    parts.append("---\nApply the edits in order; each OLD block must match exactly once.")
    return "\n".join(parts)


def summarize_edits(edits: list[ChangeModeEdit]) -> str:
    per_file: dict[str, int] = {}
    for edit in edits:
        per_file[edit.filename] = per_file.get(edit.filename, 0) + 1
    lines = [f"- {name}: {count} edit{'' if count == 1 else 's'}" for name, count in per_file.items()]
    return (
        "Change mode summary:\n"
        f"Total edits: {len(edits)}\n"
        f"Files affected: {len(per_file)}\n\n" + "\n".join(lines)
    )


def process_change_mode_output(raw: str) -> str:
    """Render a backend's change-mode reply, or explain why it could not be parsed."""
    edits = parse_change_mode_output(raw)
    if not edits:
        return f"No edits found in the response. The backend did not use the OLD/NEW format.\n\n{raw}"

    errors = validate_edits(edits)
    if errors:
        return "Edit validation failed:\n" + "\n".join(errors)

    result = format_change_mode_response(edits)
    if len(edits) > SUMMARY_THRESHOLD:
        result = summarize_edits(edits) + "\n\n" + result
    return result
