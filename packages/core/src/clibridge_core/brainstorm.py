"""Brainstorm prompt construction and idea extraction."""

from __future__ import annotations

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

METHODOLOGIES = ("divergent", "convergent", "scamper", "design-thinking", "lateral", "auto")
DEFAULT_IDEA_COUNT = 12

_METHODOLOGY_INSTRUCTIONS = {
    "divergent": """**Divergent thinking:**
- Produce as many ideas as possible without filtering
- Build on ideas that look impractical at first
- Combine unrelated concepts
- Extend each idea with "yes, and..."
- Hold all evaluation until the end""",
    "convergent": """**Convergent thinking:**
- Refine and strengthen existing concepts
- Merge related ideas into stronger ones
- Evaluate critically against clear criteria
- Rank by feasibility and impact
- Outline how the best ideas would be implemented""",
    "scamper": """**SCAMPER triggers:**
- **Substitute:** what could be replaced?
- **Combine:** what could be merged?
- **Adapt:** what could be borrowed from another field?
- **Modify:** what could be enlarged, reduced or changed?
- **Put to other use:** where else could this apply?
- **Eliminate:** what could be removed?
- **Reverse:** what could be reordered or inverted?""",
    "design-thinking": """**Human-centred design:**
- **Empathize:** who are the users and what hurts today?
- **Define:** state the problem from their point of view
- **Ideate:** generate solutions aimed at those users
- **Journey:** walk through the whole experience
- **Prototype:** favour ideas that can be tested quickly""",
    "lateral": """**Lateral thinking:**
- Connect fields that normally have nothing in common
- Question the assumptions behind the problem
- Use random associations to open new directions
- Borrow metaphors and analogies from other domains
- Turn the conventional approach upside down""",
}

_IDEA_PATTERN = re.compile(
    r"###\s+Idea\s+\d+:\s*(.+?)\n\*\*Description:\*\*\s*(.+?)(?=\n###|\n\*\*Feasibility|\n---|\Z)",
    re.IGNORECASE | re.DOTALL,
)
# How far after an idea's name its scores may appear.
_SCORE_WINDOW = 300


def methodology_instructions(methodology: str, domain: Optional[str] = None) -> str:
    if methodology in _METHODOLOGY_INSTRUCTIONS:
        return _METHODOLOGY_INSTRUCTIONS[methodology]
    lead = f"For the {domain} domain, combine:" if domain else "Combine several methods:"
    return f"""**Mixed approach:**
{lead}
- Divergent exploration informed by domain knowledge
- SCAMPER triggers and lateral leaps
- A human-centred check on practical value"""


def build_brainstorm_prompt(
    challenge: str,
    *,
    methodology: str = "auto",
    domain: Optional[str] = None,
    constraints: Optional[str] = None,
    existing_context: Optional[str] = None,
    idea_count: int = DEFAULT_IDEA_COUNT,
    include_analysis: bool = True,
) -> str:
    context_lines = []
    if domain:
        context_lines.append(f"**Domain Focus:** {domain} - apply the domain's knowledge, vocabulary and practices.")
    if constraints:
        context_lines.append(f"**Constraints & Boundaries:** {constraints}")
    if existing_context:
        context_lines.append(f"**Background Context:** {existing_context}")

    analysis = ""
    idea_scores = ""
    if include_analysis:
        analysis = """
## Analysis Framework
For each idea, provide:
- **Feasibility:** how hard it is to implement (1-10)
- **Impact:** how much value it delivers (1-10)
- **Innovation:** how original it is (1-10)
- **Assessment:** a one-sentence verdict
"""
        idea_scores = "\n**Feasibility:** [1-10] | **Impact:** [1-10] | **Innovation:** [1-10]\n**Assessment:** [verdict]"

    return f"""# BRAINSTORMING SESSION

## Core Challenge
{challenge}

## Methodology Framework
{methodology_instructions(methodology, domain)}

## Context
{chr(10).join(context_lines)}

## Output Requirements
- Generate {idea_count} distinct ideas
- Avoid the obvious; every idea should differ from the others
- Keep ideas actionable
- Give each idea a clear, descriptive name
{analysis}
## Format
### Idea [N]: [Name]
**Description:** [2-3 sentences]{idea_scores}

---

Before finishing, drop near-duplicates and check every idea against the constraints.

Begin:"""


def parse_ideas(text: str) -> list[dict]:
    """Extract ``### Idea N: name`` blocks with their description and scores.

    Scores outside 1-10 (or missing) come back as None.
    """
    ideas = []
    for m in _IDEA_PATTERN.finditer(text):
        name = m.group(1).strip()
        ideas.append(
            {
                "name": name,
                "description": m.group(2).strip(),
                "feasibility": _score(text, name, "Feasibility"),
                "impact": _score(text, name, "Impact"),
                "innovation": _score(text, name, "Innovation"),
            }
        )
    logger.debug("Parsed %d idea(s)", len(ideas))
    return ideas


def _score(text: str, name: str, label: str) -> Optional[int]:
    pattern = re.compile(
        re.escape(name) + r".{0,%d}?\*\*%s:\*\*\s*(\d+)" % (_SCORE_WINDOW, label),
        re.IGNORECASE | re.DOTALL,
    )
    m = pattern.search(text)
    if not m:
        return None
    value = int(m.group(1))
    return value if 1 <= value <= 10 else None
