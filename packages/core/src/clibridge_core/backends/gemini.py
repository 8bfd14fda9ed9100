"""Gemini CLI backend.

The Gemini CLI resolves ``@path`` references itself, takes the prompt as an
argument and prints plain text. When the Pro model's daily quota runs out the
call is retried once on Flash.
"""

from __future__ import annotations

import dataclasses
import logging
import sys
import threading
from typing import Optional

from clibridge_core.changemode import full_instructions, rewrite_file_refs
from clibridge_core.errors import ExitError, FallbackFailed, OutputTooLarge, QuotaExceeded
from clibridge_core.models import BackendConfig, BackendResult, ProgressCallback, Provider
from clibridge_core.backends.base import BaseBackend

logger = logging.getLogger(__name__)

PRO_3_MODEL = "gemini-3-pro-preview"
FLASH_3_MODEL = "gemini-3-flash-preview"
PRO_MODEL = "gemini-2.5-pro"
FLASH_MODEL = "gemini-2.5-flash"

QUOTA_SIGNAL = "Quota exceeded for quota metric 'Gemini 2.5 Pro Requests'"
FLASH_RETRY_NOTICE = "Gemini 2.5 Pro quota exceeded, retrying with Gemini 2.5 Flash...\n"
FLASH_SUCCESS_NOTICE = "Flash model completed successfully\n"


class GeminiBackend(BaseBackend):
    name = Provider.GEMINI
    binary = "gemini"
    DEFAULT_MODEL = PRO_MODEL
    MODELS = (PRO_3_MODEL, FLASH_3_MODEL, PRO_MODEL, FLASH_MODEL)
    SUPPORTS_FILE_REFS = True

    def _prepare_prompt(self, prompt: str, config: BackendConfig) -> str:
        if config.change_mode:
            return full_instructions(rewrite_file_refs(prompt))
        return prompt

    def _run(
        self,
        prompt: str,
        config: BackendConfig,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> BackendResult:
        try:
            output = self._invoke(self.build_args(prompt, config), config, on_output=on_progress, cancel_event=cancel_event)
            return BackendResult(response=output.strip(), provider=self.name, model=self.reported_model(config))
        except ExitError as e:
            if QUOTA_SIGNAL not in e.stderr_tail:
                raise
            if config.model == FLASH_MODEL:
                raise QuotaExceeded(e.code, e.stderr_tail) from e
            primary_error = e

        primary = config.model or PRO_MODEL
        logger.warning("%s quota exceeded; falling back to %s", primary, FLASH_MODEL)
        if on_progress:
            on_progress(FLASH_RETRY_NOTICE)

        fallback = dataclasses.replace(config, model=FLASH_MODEL)
        try:
            output = self._invoke(
                self.build_args(prompt, fallback), fallback, on_output=on_progress, cancel_event=cancel_event
            )
        except (ExitError, OutputTooLarge) as e:
            raise FallbackFailed(primary, FLASH_MODEL, e, self.name.value) from primary_error

        if on_progress:
            on_progress(FLASH_SUCCESS_NOTICE)
        return BackendResult(response=output.strip(), provider=self.name, model=FLASH_MODEL)

    def build_args(self, prompt: str, config: BackendConfig) -> list[str]:
        args: list[str] = []
        if config.model:
            args += ["-m", config.model]
        if config.sandbox:
            args.append("-s")
        for tool in config.allowed_tools:
            args += ["--allowed-tools", tool]
        args += ["-p", _quote_for_shell(prompt)]
        return args


def _quote_for_shell(prompt: str) -> str:
    # The Windows gemini shim is a .cmd script, so cmd.exe sees the argument.
    if sys.platform == "win32" and "@" in prompt and not prompt.startswith('"'):
        return '"' + prompt.replace('"', '""') + '"'
    return prompt
