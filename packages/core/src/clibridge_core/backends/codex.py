"""Codex CLI backend.

Codex runs non-interactively via ``exec``, reads the prompt from stdin and
prints newline-delimited JSON events. It has no ``@path`` syntax, so file
references are inlined before invocation, and it supports native multi-turn
resume through the ``thread_id`` announced in its ``thread.started`` event.

Argument order is a hard CLI contract: every global flag comes before the
``exec`` token.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from typing import Optional

from clibridge_core.backends.base import BaseBackend
from clibridge_core.changemode import condensed_instructions
from clibridge_core.models import BackendConfig, BackendResult, ProgressCallback, Provider
from clibridge_core.utils.file_refs import inline_file_refs

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5.2-codex"
MAX_JSONL_LINES = 10_000
DEFAULT_APPROVAL_MODE = "on-request"
FULL_ACCESS_SANDBOX = "danger-full-access"

_TEXT_FIELD = re.compile(r'"text"\s*:\s*"([^"]+)"')


class CodexBackend(BaseBackend):
    name = Provider.CODEX
    binary = "codex"
    DEFAULT_MODEL = DEFAULT_MODEL
    MODELS = ("gpt-5.2-codex", "gpt-5.1-codex-mini", "gpt-5.1-codex-max", "gpt-5.2", "gpt-5.1")
    SUPPORTS_FILE_REFS = False
    FILE_REF_SYNTAX = ""

    def _prepare_prompt(self, prompt: str, config: BackendConfig) -> str:
        prompt = inline_file_refs(prompt, config.cwd)
        if config.change_mode:
            prompt = condensed_instructions(prompt)
        return prompt

    def _run(
        self,
        prompt: str,
        config: BackendConfig,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> BackendResult:
        sink = _AgentMessageProgress(on_progress) if on_progress else None
        output = self._invoke(
            self.build_args(config),
            config,
            stdin_payload=prompt,
            on_output=sink,
            cancel_event=cancel_event,
        )
        response, thread_id = parse_jsonl_output(output)
        if thread_id:
            logger.debug("Codex thread: %s", thread_id)
        return BackendResult(
            response=response,
            provider=self.name,
            model=self.reported_model(config),
            thread_id=thread_id,
        )

    def build_args(self, config: BackendConfig) -> list[str]:
        args: list[str] = []
        if config.model:
            args += ["-m", config.model]

        if config.approval_mode:
            args += ["-a", config.approval_mode]
        elif config.full_auto:
            args.append("--full-auto")
        else:
            args += ["-a", DEFAULT_APPROVAL_MODE]

        sandbox_mode = config.sandbox_mode or ("workspace-write" if config.sandbox else "read-only")
        if sandbox_mode == FULL_ACCESS_SANDBOX:
            logger.warning("SECURITY: Codex full filesystem access enabled (%s)", FULL_ACCESS_SANDBOX)
        args += ["-s", sandbox_mode]

        if config.reasoning_effort:
            args += ["--config", f'model_reasoning_effort="{config.reasoning_effort}"']

        args += ["--json", "-", "exec"]
        if config.thread_id:
            args += ["resume", config.thread_id]
        return args


def parse_jsonl_output(output: str) -> tuple[str, Optional[str]]:
    """Decode Codex's event stream into ``(response_text, thread_id)``.

    Only the first MAX_JSONL_LINES lines are considered. When no recognised
    event carries text, quoted ``"text"`` values are scraped from the raw
    output instead, and failing that the raw output itself is returned.
    """
    lines = output.strip().split("\n")
    if len(lines) > MAX_JSONL_LINES:
        logger.warning("Truncated Codex JSONL output to %d lines", MAX_JSONL_LINES)
        lines = lines[:MAX_JSONL_LINES]

    thread_id: Optional[str] = None
    chunks: list[str] = []
    for line in lines:
        if not line.strip():
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON line: %s", line[:50])
            continue
        if not isinstance(event, dict):
            continue
        if event.get("type") == "thread.started" and event.get("thread_id"):
            thread_id = event["thread_id"]
        chunks.extend(_event_text(event))

    response = "\n".join(chunks).strip()
    if response:
        return response, thread_id

    logger.warning("No structured response in Codex output; falling back to raw text extraction")
    scraped = [text for text in _TEXT_FIELD.findall(output) if text]
    if scraped:
        return "\n".join(scraped), thread_id
    return output, thread_id


def _event_text(event: dict) -> list[str]:
    """Text chunks contributed by one event, in order."""
    kind = event.get("type")
    if kind == "item.agent_message":
        text = event.get("content") or event.get("text")
        return [text] if isinstance(text, str) and text else []

    if kind == "item.message":
        content = event.get("content")
        if isinstance(content, str):
            return [content] if content else []
        if isinstance(content, list):
            return [
                part["text"]
                for part in content
                if isinstance(part, dict) and part.get("type") == "text" and part.get("text")
            ]
        return []

    if kind == "turn.completed":
        output = event.get("output")
        if isinstance(output, str):
            return [output] if output else []
        if isinstance(output, dict) and output.get("content"):
            return [output["content"]]
        return []

    if kind == "item.completed":
        item = event.get("item")
        if isinstance(item, dict) and item.get("type") == "agent_message" and item.get("text"):
            return [item["text"]]
    return []


class _AgentMessageProgress:
    """Progress sink that forwards only agent-message text from raw JSONL chunks.

    Chunks may split a line anywhere, so partial lines are held until their
    newline arrives.
    """

    def __init__(self, on_progress: ProgressCallback):
        self._on_progress = on_progress
        self._pending = ""

    def __call__(self, chunk: str) -> None:
        self._pending += chunk
        *complete, self._pending = self._pending.split("\n")
        for line in complete:
            if not line.strip():
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(event, dict):
                continue
            if event.get("type") in ("item.agent_message", "item.completed"):
                for text in _event_text(event):
                    self._on_progress(text)
