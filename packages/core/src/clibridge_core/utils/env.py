"""Environment filtering for child CLI processes.

Children only ever see the variables they need to find binaries, locate
their own config, reach the network and authenticate. Anything else in the
parent environment (tokens for unrelated services, shell state) stays behind.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

ALLOWED_ENV_VARS: frozenset[str] = frozenset(
    {
        # process basics
        "PATH",
        "HOME",
        "LANG",
        "TERM",
        "USER",
        "SHELL",
        # windows equivalents
        "USERPROFILE",
        "APPDATA",
        "LOCALAPPDATA",
        "SYSTEMROOT",
        # network
        "HTTP_PROXY",
        "HTTPS_PROXY",
        "NO_PROXY",
        "http_proxy",
        "https_proxy",
        "no_proxy",
        # provider credentials and config
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "OPENAI_API_KEY",
        "CODEX_HOME",
        # per-user config/data locations
        "XDG_CONFIG_HOME",
        "XDG_DATA_HOME",
        "XDG_CACHE_HOME",
        "NODE_ENV",
    }
)


def allowed_env(environ: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Return the allow-listed subset of ``environ`` (default: ``os.environ``)."""
    source = os.environ if environ is None else environ
    return {key: value for key, value in source.items() if key in ALLOWED_ENV_VARS}
