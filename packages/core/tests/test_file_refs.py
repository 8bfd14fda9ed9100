"""Tests for @path inlining."""

import os

import pytest

from clibridge_core.utils import file_refs
from clibridge_core.utils.file_refs import (
    ACCESS_DENIED_OUTSIDE,
    ACCESS_DENIED_SYMLINK,
    ACCESS_DENIED_TRAVERSAL,
    FILE_NOT_FOUND,
    FILE_TOO_LARGE,
    INLINE_LIMIT_REACHED,
    inline_file_refs,
    is_within,
)


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "work"
    root.mkdir()
    (root / "a.txt").write_text("ALPHA CONTENT")
    (root / "src").mkdir()
    (root / "src" / "main.py").write_text("print('main body')")
    (root / "src" / "util.py").write_text("UTIL BODY")
    (tmp_path / "secret.txt").write_text("TOP SECRET")
    return root


class TestInlineFileRefs:
    def test_prompt_without_refs_is_unchanged(self, workspace):
        assert inline_file_refs("no references here", str(workspace)) == "no references here"

    def test_file_content_is_inlined_in_place(self, workspace):
        out = inline_file_refs("before @a.txt after", str(workspace))
        assert out.startswith("before ")
        assert out.endswith(" after")
        assert "--- File: a.txt ---\nALPHA CONTENT\n--- end file: a.txt ---" in out

    def test_same_file_through_two_spellings_is_inlined_once(self, workspace):
        out = inline_file_refs("@a.txt and @./a.txt", str(workspace))
        assert out.count("ALPHA CONTENT") == 1
        assert out.count("Duplicate @reference") == 1
        assert "Duplicate @reference: ./a.txt" in out

    def test_repeated_token_is_a_duplicate(self, workspace):
        out = inline_file_refs("@a.txt @a.txt", str(workspace))
        assert out.count("ALPHA CONTENT") == 1
        assert "Duplicate @reference: a.txt" in out

    def test_parent_traversal_is_denied(self, workspace):
        out = inline_file_refs("read @../secret.txt", str(workspace))
        assert ACCESS_DENIED_OUTSIDE in out
        assert "TOP SECRET" not in out

    def test_absolute_path_outside_is_denied(self, workspace, tmp_path):
        out = inline_file_refs(f"read @{tmp_path / 'secret.txt'}", str(workspace))
        assert ACCESS_DENIED_OUTSIDE in out
        assert "TOP SECRET" not in out

    def test_absolute_path_inside_is_allowed(self, workspace):
        out = inline_file_refs(f"@{workspace / 'a.txt'}", str(workspace))
        assert "ALPHA CONTENT" in out

    def test_missing_path_with_dotdot_inside_is_denied(self, workspace):
        out = inline_file_refs("@src/../nothing-here.txt", str(workspace))
        assert out == ACCESS_DENIED_TRAVERSAL

    def test_missing_file(self, workspace):
        out = inline_file_refs("@nope.txt", str(workspace))
        assert out == f"{FILE_NOT_FOUND}: nope.txt"

    def test_directory_lists_names_only(self, workspace):
        out = inline_file_refs("@src", str(workspace))
        assert "--- Directory: src ---" in out
        assert "main.py" in out
        assert "util.py" in out
        assert "main body" not in out
        assert "UTIL BODY" not in out

    def test_directory_listing_is_bounded(self, workspace, monkeypatch):
        monkeypatch.setattr(file_refs, "MAX_DIR_ENTRIES", 1)
        out = inline_file_refs("@src", str(workspace))
        assert "showing first 1" in out

    def test_symlink_escaping_workspace_is_denied(self, workspace, tmp_path):
        link = workspace / "link.txt"
        try:
            os.symlink(tmp_path / "secret.txt", link)
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")
        out = inline_file_refs("@link.txt", str(workspace))
        assert ACCESS_DENIED_SYMLINK in out
        assert "TOP SECRET" not in out

    def test_file_too_large(self, workspace, monkeypatch):
        monkeypatch.setattr(file_refs, "MAX_FILE_BYTES", 5)
        out = inline_file_refs("@a.txt", str(workspace))
        assert out.startswith(f"{FILE_TOO_LARGE}: a.txt")
        assert "ALPHA" not in out

    def test_total_inline_limit(self, workspace, monkeypatch):
        monkeypatch.setattr(file_refs, "MAX_TOTAL_BYTES", 15)
        out = inline_file_refs("@a.txt @src/util.py", str(workspace))
        assert "ALPHA CONTENT" in out
        assert f"{INLINE_LIMIT_REACHED}: src/util.py" in out
        assert "UTIL BODY" not in out

    def test_defaults_to_current_directory(self, workspace, monkeypatch):
        monkeypatch.chdir(workspace)
        assert "ALPHA CONTENT" in inline_file_refs("@a.txt")


class TestIsWithin:
    def test_root_itself(self, tmp_path):
        assert is_within(str(tmp_path), str(tmp_path)) is True

    def test_child(self, tmp_path):
        assert is_within(str(tmp_path / "x" / "y"), str(tmp_path)) is True

    def test_sibling_with_common_prefix(self, tmp_path):
        assert is_within(str(tmp_path) + "-other", str(tmp_path)) is False

    def test_parent(self, tmp_path):
        assert is_within(str(tmp_path.parent), str(tmp_path)) is False
