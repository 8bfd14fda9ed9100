import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024

# Per-tool session retention. Tools not listed use _FALLBACK_SESSION_SETTINGS.
DEFAULT_SESSION_SETTINGS: dict = {
    "review-code": {"ttl_hours": 24, "max_sessions": 20, "eviction_policy": "lru"},
    "ask": {"ttl_hours": 24 * 7, "max_sessions": 50, "eviction_policy": "lru"},
    "brainstorm": {"ttl_hours": 24 * 14, "max_sessions": 30, "eviction_policy": "lru"},
}
_FALLBACK_SESSION_SETTINGS = {"ttl_hours": 24, "max_sessions": 20, "eviction_policy": "lru"}

DEFAULT_CONFIG: dict = {
    "backend": "gemini",
    "model": None,  # None = the backend's own default
    "store": "file",  # "file" | "none"
    "session_dir": "~/.clibridge/sessions",
    "legacy_session_dir": "~/.ai-cli-mcp/sessions",  # read-only; records found here are migrated
    "max_output_bytes": DEFAULT_MAX_OUTPUT_BYTES,
    "sessions": {},  # per-tool overrides of DEFAULT_SESSION_SETTINGS
}


def load_config(config_path: str = ".clibridge.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .clibridge.yml in the current directory
      3. CLI argument overrides
      4. CLIBRIDGE_SESSION_DIR from the environment
    """
    config = {**DEFAULT_CONFIG, "sessions": dict(DEFAULT_CONFIG["sessions"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    env_dir = os.environ.get("CLIBRIDGE_SESSION_DIR")
    if env_dir:
        config["session_dir"] = env_dir

    return config


def session_settings(config: dict, tool_name: str) -> dict:
    """Effective retention settings for one tool: defaults, then config overrides."""
    settings = dict(DEFAULT_SESSION_SETTINGS.get(tool_name, _FALLBACK_SESSION_SETTINGS))
    overrides = (config.get("sessions") or {}).get(tool_name) or {}
    settings.update({k: v for k, v in overrides.items() if v is not None})
    return settings
