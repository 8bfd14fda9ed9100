"""Base backend implementing the Template Method pattern.

All backends share the same execution algorithm:
    execute() → validate model name
              → _prepare_prompt()   ← provider-specific prompt rewriting
              → _run()              ← provider-specific args, invocation, decoding
              → BackendResult

Subclasses implement two things only:
  - _prepare_prompt: change-mode wrapping, file-reference handling
  - _run: build argv, call _invoke() one or more times, decode the output

Model validation, availability checks and error attribution live here so
every provider behaves identically at the edges.
"""

from __future__ import annotations

import logging
import shutil
import threading
from abc import ABC, abstractmethod
from typing import Optional

from clibridge_core.errors import BackendError, InvalidModel
from clibridge_core.models import BackendConfig, BackendResult, ProgressCallback, Provider
from clibridge_core.utils.process import DEFAULT_MAX_OUTPUT_BYTES, run_command

logger = logging.getLogger(__name__)


class BaseBackend(ABC):
    name: Provider
    binary: str
    DEFAULT_MODEL: str
    MODELS: tuple[str, ...] = ()
    SUPPORTS_FILE_REFS: bool = False
    FILE_REF_SYNTAX: str = "@"

    def __init__(self, max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES):
        self.max_output_bytes = max_output_bytes

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def execute(
        self,
        prompt: str,
        config: BackendConfig,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BackendResult:
        """Run one prompt through this backend and return the normalized result.

        Any BackendError escaping a subclass is stamped with this backend's
        provider and the model in use, so the caller can always report both.
        """
        if config.model and config.model.startswith("-"):
            raise InvalidModel(
                f"Invalid model name {config.model!r}: model cannot start with '-'",
                self.name.value,
                config.model,
            )

        prepared = self._prepare_prompt(prompt, config)
        try:
            return self._run(prepared, config, on_progress, cancel_event)
        except BackendError as e:
            if e.provider is None:
                e.provider = self.name.value
            if e.model is None:
                e.model = self.reported_model(config)
            raise

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def get_models(self) -> list[str]:
        return list(self.MODELS)

    def supports_file_refs(self) -> bool:
        return self.SUPPORTS_FILE_REFS

    def get_file_ref_syntax(self) -> str:
        return self.FILE_REF_SYNTAX

    def reported_model(self, config: BackendConfig) -> str:
        return config.model or self.DEFAULT_MODEL

    # ------------------------------------------------------------------ #
    # Abstract — implement in each backend                                 #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _prepare_prompt(self, prompt: str, config: BackendConfig) -> str:
        """Return the prompt text actually sent to the CLI."""

    @abstractmethod
    def _run(
        self,
        prompt: str,
        config: BackendConfig,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> BackendResult:
        """Invoke the CLI and decode its output. Raise BackendError on failure."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _invoke(
        self,
        args: list[str],
        config: BackendConfig,
        *,
        stdin_payload: Optional[str] = None,
        on_output: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        logger.debug("%s %s", self.binary, " ".join(a if len(a) < 80 else a[:77] + "..." for a in args))
        return run_command(
            self.binary,
            args,
            stdin_payload=stdin_payload,
            on_output=on_output,
            cwd=config.cwd,
            max_output_bytes=self.max_output_bytes,
            cancel_event=cancel_event,
        )
