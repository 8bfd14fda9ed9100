"""Review prompt construction and response parsing.

Comments come back as plain dicts so this module stays independent of the
store layer; the CLI turns them into ReviewComment records.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Optional

from clibridge_core.git.state import GitState

logger = logging.getLogger(__name__)

SEVERITIES = ("critical", "important", "suggestion", "question")
REVIEW_TYPES = ("security", "performance", "quality", "architecture", "general")
SEVERITY_FILTERS = ("all", "critical-only", "important-and-above")

_TYPE_INSTRUCTIONS = {
    "security": """Focus on:
- Input validation and sanitization
- Authentication and authorization flaws
- Injection (SQL, command, template), XSS and CSRF
- Hardcoded secrets, credentials and API keys
- Vulnerable dependencies
- Weak cryptography and unsafe data handling""",
    "performance": """Focus on:
- Algorithmic complexity on hot paths
- Redundant loops and repeated computation
- Memory growth and inefficient data structures
- Query patterns (N+1 queries, missing indexes)
- Caching opportunities
- Resource cleanup and connection reuse""",
    "quality": """Focus on:
- Readability and clarity
- Naming consistency
- Duplicated logic
- Error handling and edge cases
- Gaps in test coverage
- Missing or stale documentation""",
    "architecture": """Focus on:
- Design principles and patterns
- Coupling and cohesion between modules
- Scalability limits
- API design and contracts
- Separation of concerns
- Accumulating technical debt""",
    "general": """Review comprehensively, covering:
- Security vulnerabilities
- Performance bottlenecks
- Code quality problems
- Architectural concerns
Report critical and important issues first.""",
}

_OUTPUT_FORMAT = """## Output Format
For each issue found, use this EXACT format:

**[SEVERITY: critical|important|suggestion|question]**
**File:** {filename}
**Lines:** {start}-{end} (if applicable, otherwise write "N/A")
**Issue:** {brief title}
**Details:** {explanation}
**Recommendation:** {suggested fix or action}

---
"""

_COMMENT_PATTERN = re.compile(
    r"\*{2,3}\s*\[\s*SEVERITY\s*:\s*(critical|important|suggestion|question)\s*\]\s*\*{2,3}\s+"
    r"\*{2,3}\s*File\s*:\s*\*{2,3}\s*([^\n]+?)\s+"
    r"\*{2,3}\s*Lines\s*:\s*\*{2,3}\s*([^\n]+?)\s+"
    r"\*{2,3}\s*Issue\s*:\s*\*{2,3}\s*([^\n]+?)\s+"
    r"\*{2,3}\s*Details\s*:\s*\*{2,3}\s*(.+?)\s+"
    r"\*{2,3}\s*Recommendation\s*:\s*\*{2,3}\s*(.+?)"
    r"(?=\n\s*\*{2,3}\s*\[\s*SEVERITY|---|\Z)",
    re.IGNORECASE | re.DOTALL,
)

_FALLBACK_PATTERNS = (
    re.compile(r"(?:issue|problem|concern|warning|error):\s*(.+?)(?:\n\n|\Z)", re.IGNORECASE | re.DOTALL),
    re.compile(r"(?:critical|important|security|vulnerability):\s*(.+?)(?:\n\n|\Z)", re.IGNORECASE | re.DOTALL),
    re.compile(r"(?:recommendation|suggestion|fix):\s*(.+?)(?:\n\n|\Z)", re.IGNORECASE | re.DOTALL),
)

_LINE_RANGE = re.compile(r"(\d+)\s*-\s*(\d+)")
_FILE_MENTION = re.compile(r"@(\S+)")

# Minimum length for an unstructured reply to be kept as a single comment.
_MIN_GENERAL_COMMENT = 50


def review_type_instructions(review_type: str) -> str:
    return _TYPE_INSTRUCTIONS.get(review_type, _TYPE_INSTRUCTIONS["general"])


def build_review_prompt(
    user_prompt: str,
    *,
    session_id: str,
    round_number: int,
    git_state: GitState,
    review_type: str = "general",
    files: Optional[list[str]] = None,
    history: str = "",
) -> str:
    """Build the prompt for one review round.

    ``history`` is the already-formatted summary of earlier rounds (empty for
    the first round or when history is disabled).
    """
    files_line = f"{len(files)} specified" if files else "all tracked files"
    prompt = f"""# CODE REVIEW SESSION (Round {round_number})

## Review Context
- Session ID: {session_id}
- Branch: {git_state.branch}
- Commit: {git_state.short_hash}
- Review Type: {review_type}
- Files: {files_line}

## Review Instructions
{review_type_instructions(review_type)}

{_OUTPUT_FORMAT}
"""
    if history:
        prompt += history

    prompt += "\n## Current Review Request\n"
    if files:
        prompt += " ".join(f"@{f}" for f in files) + "\n\n"
    prompt += f"{user_prompt}\n"
    return prompt


def new_comment_id() -> str:
    return f"cmt-{uuid.uuid4()}"


def parse_review_response(text: str, round_number: int) -> list[dict]:
    """Extract review comments from a backend reply.

    Structured blocks are preferred. Without any, issue-like phrases are
    collected as suggestions, and a substantive reply with neither becomes
    one general question so nothing the reviewer said is lost.
    """
    comments = []
    for m in _COMMENT_PATTERN.finditer(text):
        severity, file_pattern, lines, issue, details, recommendation = (g.strip() for g in m.groups())
        comments.append(
            _comment(
                file_pattern,
                severity.lower(),
                f"{issue}\n\n{details}\n\n**Recommendation:** {recommendation}",
                round_number,
                line_range=_parse_line_range(lines),
            )
        )
    logger.debug("Parsed %d structured review comment(s)", len(comments))
    if comments:
        return comments

    for pattern in _FALLBACK_PATTERNS:
        for m in pattern.finditer(text):
            comments.append(_comment("Unknown", "suggestion", m.group(1).strip(), round_number))
    if not comments and len(text.strip()) > _MIN_GENERAL_COMMENT:
        comments.append(_comment("General", "question", text.strip(), round_number))
    return comments


def validate_comments(comments: list[dict]) -> list[dict]:
    valid = []
    for c in comments:
        if c.get("id") and c.get("file_pattern") and c.get("severity") in SEVERITIES and c.get("comment", "").strip():
            valid.append(c)
        else:
            logger.debug("Dropping invalid review comment: %r", c)
    return valid


def filter_by_severity(comments: list, severity_filter: str) -> list:
    """Filter comment dicts or records by one of SEVERITY_FILTERS."""
    if severity_filter == "critical-only":
        allowed = {"critical"}
    elif severity_filter == "important-and-above":
        allowed = {"critical", "important"}
    else:
        return list(comments)
    return [c for c in comments if _severity_of(c) in allowed]


def extract_file_refs(prompt: str) -> list[str]:
    return _FILE_MENTION.findall(prompt)


def _severity_of(comment) -> str:
    return comment["severity"] if isinstance(comment, dict) else comment.severity


def _parse_line_range(lines: str) -> Optional[tuple[int, int]]:
    if lines.lower() == "n/a":
        return None
    m = _LINE_RANGE.search(lines)
    if m:
        return int(m.group(1)), int(m.group(2))
    single = re.match(r"\d+", lines)
    if single:
        line = int(single.group(0))
        return line, line
    return None


def _comment(
    file_pattern: str,
    severity: str,
    body: str,
    round_number: int,
    line_range: Optional[tuple[int, int]] = None,
) -> dict:
    return {
        "id": new_comment_id(),
        "file_pattern": file_pattern,
        "line_range": line_range,
        "severity": severity,
        "comment": body,
        "round_generated": round_number,
        "status": "pending",
    }
