"""Inline ``@path`` references for CLIs that cannot read files themselves.

Every ``@path`` token in a prompt is replaced, in place and in order, by one
of: the file's content, a bounded directory listing, a pointer to an earlier
copy of the same target, or a bracketed marker explaining why nothing was
inlined. Only paths inside the working directory are ever read, and the
total amount of inlined text is capped.

A bad reference never raises; the marker text is the error report.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 10 * 1024 * 1024
MAX_TOTAL_BYTES = 20 * 1024 * 1024
MAX_DIR_ENTRIES = 200

FILE_REF_PATTERN = re.compile(r"@(?:\.\.?/)?[^\s@]+")

ACCESS_DENIED_TRAVERSAL = "[Access denied: path traversal not allowed]"
ACCESS_DENIED_OUTSIDE = "[Access denied: path is outside workspace]"
ACCESS_DENIED_SYMLINK = "[Access denied: symlink points outside workspace]"
FILE_TOO_LARGE = "[File too large]"
FILE_NOT_FOUND = "[File not found]"
ERROR_READING_FILE = "[Error reading file]"
INLINE_LIMIT_REACHED = "[Inline limit reached]"


@dataclass
class _InlineState:
    """Bookkeeping for a single inline_file_refs() call."""

    lexical_root: str
    canonical_root: str
    total_bytes: int = 0
    seen_tokens: set[str] = field(default_factory=set)
    seen_targets: set[str] = field(default_factory=set)
    denied: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


def inline_file_refs(prompt: str, cwd: Optional[str] = None) -> str:
    """Return ``prompt`` with every ``@path`` reference resolved against ``cwd``."""
    if not FILE_REF_PATTERN.search(prompt):
        return prompt

    working_dir = cwd or os.getcwd()
    lexical_root = os.path.abspath(working_dir)
    try:
        canonical_root = os.path.realpath(working_dir)
    except OSError:
        canonical_root = lexical_root
    state = _InlineState(lexical_root=lexical_root, canonical_root=canonical_root)

    result = FILE_REF_PATTERN.sub(lambda m: _resolve_token(m.group(0), state), prompt)

    if state.denied:
        logger.warning("Blocked access to %d file reference(s) outside workspace", len(state.denied))
    if state.missing:
        logger.warning("Missing file references: %s", ", ".join(state.missing))
    return result


def is_within(path: str, root: str) -> bool:
    """True if ``path`` is ``root`` itself or lies beneath it."""
    try:
        relative = os.path.relpath(os.path.normpath(path), os.path.normpath(root))
    except ValueError:
        # Different drives on Windows.
        return False
    if relative == os.curdir:
        return True
    return not (relative == os.pardir or relative.startswith(os.pardir + os.sep)) and not os.path.isabs(relative)


def _duplicate(ref_path: str) -> str:
    return f"\n--- Duplicate @reference: {ref_path} (see earlier in prompt) ---\n"


def _resolve_token(token: str, state: _InlineState) -> str:
    ref_path = token[1:]

    if token in state.seen_tokens:
        return _duplicate(ref_path)
    state.seen_tokens.add(token)

    joined = ref_path if os.path.isabs(ref_path) else os.path.join(state.lexical_root, ref_path)
    resolved = os.path.abspath(joined)

    if not is_within(resolved, state.lexical_root):
        state.denied.append(ref_path)
        logger.warning("Path traversal blocked for @%s (resolved to %s)", ref_path, resolved)
        return f"{ACCESS_DENIED_OUTSIDE} ({ref_path})"

    try:
        if not os.path.exists(joined):
            if ".." in ref_path:
                state.denied.append(ref_path)
                logger.warning("Path traversal blocked for missing path with '..': %s", ref_path)
                return ACCESS_DENIED_TRAVERSAL
            state.missing.append(ref_path)
            return f"{FILE_NOT_FOUND}: {ref_path}"

        canonical = os.path.realpath(joined)
        if not is_within(canonical, state.canonical_root):
            state.denied.append(ref_path)
            if os.path.normpath(canonical) != os.path.normpath(resolved):
                logger.warning("Symlink traversal blocked for @%s (realpath %s)", ref_path, canonical)
                return f"{ACCESS_DENIED_SYMLINK} ({ref_path})"
            return f"{ACCESS_DENIED_OUTSIDE} ({ref_path})"

        if canonical in state.seen_targets:
            return _duplicate(ref_path)

        if os.path.isdir(canonical):
            return _inline_directory(ref_path, canonical, state)
        return _inline_file(ref_path, canonical, state)
    except OSError as e:
        logger.error("Error reading file %s: %s", ref_path, e)
        return f"{ERROR_READING_FILE}: {ref_path}"


def _inline_directory(ref_path: str, canonical: str, state: _InlineState) -> str:
    names: list[str] = []
    truncated = False
    with os.scandir(canonical) as entries:
        for entry in entries:
            if len(names) >= MAX_DIR_ENTRIES:
                truncated = True
                break
            names.append(entry.name)

    suffix = f", ... (showing first {MAX_DIR_ENTRIES})" if truncated else ""
    listing = f"\n--- Directory: {ref_path} ---\nFiles: {', '.join(names)}{suffix}\n--- end directory ---\n"
    size = len(listing.encode("utf-8"))
    if state.total_bytes + size > MAX_TOTAL_BYTES:
        logger.warning("Inline limit reached while listing directory %s", ref_path)
        return f"{INLINE_LIMIT_REACHED}: {ref_path}"

    state.total_bytes += size
    state.seen_targets.add(canonical)
    return listing


def _inline_file(ref_path: str, canonical: str, state: _InlineState) -> str:
    size = os.path.getsize(canonical)
    if size > MAX_FILE_BYTES:
        megabytes = size / 1024 / 1024
        logger.warning("File too large for @%s (%.2fMB)", ref_path, megabytes)
        return f"{FILE_TOO_LARGE}: {ref_path} ({megabytes:.2f}MB exceeds 10MB limit)"
    if state.total_bytes + size > MAX_TOTAL_BYTES:
        logger.warning("Inline limit reached; skipping %s (%d bytes)", ref_path, size)
        return f"{INLINE_LIMIT_REACHED}: {ref_path}"

    with open(canonical, encoding="utf-8", errors="replace") as f:
        content = f.read()
    state.total_bytes += size
    state.seen_targets.add(canonical)
    return f"\n--- File: {ref_path} ---\n{content}\n--- end file: {ref_path} ---\n"
