"""Backend lookup by provider name."""

from __future__ import annotations

import logging
from typing import Optional, Union

from clibridge_core.backends.base import BaseBackend
from clibridge_core.backends.codex import CodexBackend
from clibridge_core.backends.gemini import GeminiBackend
from clibridge_core.errors import BackendUnavailable, UnknownBackend
from clibridge_core.models import Provider
from clibridge_core.utils.process import DEFAULT_MAX_OUTPUT_BYTES

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = Provider.GEMINI


class BackendRegistry:
    """Holds one adapter per provider.

    Build one per process (the CLI does so in its group callback) and pass it
    to whatever needs to execute prompts.
    """

    def __init__(self, backends: Optional[list[BaseBackend]] = None, max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES):
        if backends is None:
            backends = [GeminiBackend(max_output_bytes), CodexBackend(max_output_bytes)]
        self._backends: dict[Provider, BaseBackend] = {b.name: b for b in backends}

    def register(self, backend: BaseBackend) -> None:
        self._backends[backend.name] = backend

    def get_unchecked(self, name: Union[str, Provider, None] = None) -> BaseBackend:
        """Return the adapter for ``name`` without checking its binary is installed."""
        provider = _to_provider(name)
        backend = self._backends.get(provider) if provider else None
        if backend is None:
            raise UnknownBackend(f"Unknown backend: {name}. Available: {', '.join(p.value for p in self._backends)}")
        return backend

    def get(self, name: Union[str, Provider, None] = None) -> BaseBackend:
        """Return the adapter for ``name`` (default: gemini), which must be installed."""
        backend = self.get_unchecked(name)
        if not backend.is_available():
            raise BackendUnavailable(
                f"Backend '{backend.name.value}' is not available: '{backend.binary}' was not found on PATH",
                backend.name.value,
            )
        return backend

    def available(self) -> list[Provider]:
        return [p for p, b in self._backends.items() if b.is_available()]

    def all(self) -> list[BaseBackend]:
        return list(self._backends.values())


def _to_provider(name: Union[str, Provider, None]) -> Optional[Provider]:
    if name is None:
        return DEFAULT_PROVIDER
    if isinstance(name, Provider):
        return name
    try:
        return Provider(name.lower())
    except ValueError:
        return None
