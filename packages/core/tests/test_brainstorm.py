"""Tests for brainstorm prompt construction and idea extraction."""

from clibridge_core.brainstorm import build_brainstorm_prompt, methodology_instructions, parse_ideas

_REPLY = """### Idea 1: Offline Mode
**Description:** Cache the last sync so the app works on a plane.
**Feasibility:** 8 | **Impact:** 7 | **Innovation:** 4
**Assessment:** Solid.

---

### Idea 2: Voice Notes
**Description:** Record short voice memos and transcribe them.
**Feasibility:** 6 | **Impact:** 12 | **Innovation:** 7

---
"""


class TestBuildPrompt:
    def test_core_sections(self):
        prompt = build_brainstorm_prompt("Grow retention", methodology="scamper", idea_count=5)
        assert "## Core Challenge\nGrow retention" in prompt
        assert "SCAMPER" in prompt
        assert "Generate 5 distinct ideas" in prompt
        assert "## Analysis Framework" in prompt

    def test_optional_context(self):
        prompt = build_brainstorm_prompt(
            "x", domain="healthcare", constraints="no budget", existing_context="we tried ads"
        )
        assert "**Domain Focus:** healthcare" in prompt
        assert "**Constraints & Boundaries:** no budget" in prompt
        assert "**Background Context:** we tried ads" in prompt

    def test_without_analysis(self):
        prompt = build_brainstorm_prompt("x", include_analysis=False)
        assert "## Analysis Framework" not in prompt
        assert "**Feasibility:**" not in prompt

    def test_auto_methodology_mentions_domain(self):
        assert "For the fintech domain" in methodology_instructions("auto", "fintech")
        assert "Combine several methods" in methodology_instructions("auto")


class TestParseIdeas:
    def test_names_descriptions_and_scores(self):
        ideas = parse_ideas(_REPLY)
        assert [i["name"] for i in ideas] == ["Offline Mode", "Voice Notes"]
        assert ideas[0]["description"] == "Cache the last sync so the app works on a plane."
        assert (ideas[0]["feasibility"], ideas[0]["impact"], ideas[0]["innovation"]) == (8, 7, 4)

    def test_out_of_range_score_is_none(self):
        ideas = parse_ideas(_REPLY)
        assert ideas[1]["impact"] is None
        assert ideas[1]["feasibility"] == 6

    def test_missing_scores(self):
        ideas = parse_ideas("### Idea 1: Plain\n**Description:** Nothing scored here.\n")
        assert ideas == [
            {
                "name": "Plain",
                "description": "Nothing scored here.",
                "feasibility": None,
                "impact": None,
                "innovation": None,
            }
        ]

    def test_no_ideas(self):
        assert parse_ideas("I could not think of anything.") == []
