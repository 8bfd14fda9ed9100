"""Tests for change-mode prompt wrapping and OLD/NEW block parsing."""

from clibridge_core.changemode import (
    ChangeModeEdit,
    condensed_instructions,
    full_instructions,
    parse_change_mode_output,
    process_change_mode_output,
    rewrite_file_refs,
    summarize_edits,
    validate_edits,
)


def _block(filename="src/app.py", line=10, old="x = 1", new="x = 2") -> str:
    return f"**FILE: {filename}:{line}**\n```\nOLD:\n{old}\nNEW:\n{new}\n```\n"


class TestInstructions:
    def test_full_instructions_end_with_request(self):
        text = full_instructions("make it faster")
        assert "[CHANGEMODE INSTRUCTIONS]" in text
        assert "USER REQUEST:\nmake it faster" in text
        assert "must match file content precisely" in text

    def test_condensed_instructions_are_shorter(self):
        assert len(condensed_instructions("x")) < len(full_instructions("x"))

    def test_rewrite_file_refs(self):
        assert rewrite_file_refs("see file:a.py and file:b/c.ts") == "see @a.py and @b/c.ts"


class TestParse:
    def test_single_block(self):
        edits = parse_change_mode_output(_block())
        assert edits == [ChangeModeEdit(filename="src/app.py", line=10, old_code="x = 1", new_code="x = 2")]

    def test_multiple_blocks_in_order(self):
        text = "Here you go:\n\n" + _block("a.py", 1) + "\n" + _block("b.py", 20, "def f():\n    pass", "def f():\n    return 1")
        edits = parse_change_mode_output(text)
        assert [e.filename for e in edits] == ["a.py", "b.py"]
        assert edits[1].old_code == "def f():\n    pass"
        assert edits[1].new_code == "def f():\n    return 1"

    def test_no_blocks(self):
        assert parse_change_mode_output("I think you should refactor.") == []


class TestValidate:
    def test_valid_edit(self):
        assert validate_edits([ChangeModeEdit("a.py", 1, "a", "b")]) == []

    def test_empty_old(self):
        errors = validate_edits([ChangeModeEdit("a.py", 1, "  ", "b")])
        assert errors == ["Edit 1 (a.py): OLD section is empty"]

    def test_identical_old_and_new(self):
        errors = validate_edits([ChangeModeEdit("a.py", 1, "same", "same")])
        assert "identical" in errors[0]


class TestProcess:
    def test_formats_edits(self):
        out = process_change_mode_output(_block())
        assert out.startswith("[CHANGEMODE OUTPUT]")
        assert "1 modification prepared" in out
        assert "### Edit 1: src/app.py:10" in out

    def test_unparseable_reply_is_returned_with_notice(self):
        out = process_change_mode_output("just prose")
        assert out.startswith("No edits found in the response.")
        assert out.endswith("just prose")

    def test_invalid_edits_reported(self):
        out = process_change_mode_output(_block(old="same", new="same"))
        assert out.startswith("Edit validation failed:")

    def test_summary_prepended_above_threshold(self):
        text = "\n".join(_block(f"f{i % 2}.py", i + 1, f"old{i}", f"new{i}") for i in range(6))
        out = process_change_mode_output(text)
        assert out.startswith("Change mode summary:")
        assert "Total edits: 6" in out
        assert "Files affected: 2" in out

    def test_summary_counts_per_file(self):
        edits = [ChangeModeEdit("a.py", 1, "a", "b"), ChangeModeEdit("a.py", 5, "c", "d"), ChangeModeEdit("b.py", 1, "e", "f")]
        summary = summarize_edits(edits)
        assert "- a.py: 2 edits" in summary
        assert "- b.py: 1 edit" in summary
