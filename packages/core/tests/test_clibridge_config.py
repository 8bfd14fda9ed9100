"""Tests for configuration loading."""

from clibridge_core.config import DEFAULT_MAX_OUTPUT_BYTES, load_config, session_settings


def test_defaults_applied_when_no_config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("CLIBRIDGE_SESSION_DIR", raising=False)
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["backend"] == "gemini"
    assert config["model"] is None
    assert config["store"] == "file"
    assert config["session_dir"] == "~/.clibridge/sessions"
    assert config["max_output_bytes"] == DEFAULT_MAX_OUTPUT_BYTES


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".clibridge.yml"
    cfg.write_text("backend: codex\nmodel: gpt-5.1\nstore: none\n")
    config = load_config(config_path=str(cfg))
    assert config["backend"] == "codex"
    assert config["model"] == "gpt-5.1"
    assert config["store"] == "none"


def test_empty_config_file(tmp_path):
    cfg = tmp_path / ".clibridge.yml"
    cfg.write_text("")
    assert load_config(config_path=str(cfg))["backend"] == "gemini"


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".clibridge.yml"
    cfg.write_text("backend: codex\n")
    config = load_config(config_path=str(cfg), cli_overrides={"backend": "gemini"})
    assert config["backend"] == "gemini"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".clibridge.yml"
    cfg.write_text("backend: codex\n")
    config = load_config(config_path=str(cfg), cli_overrides={"backend": None})
    assert config["backend"] == "codex"


def test_session_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("CLIBRIDGE_SESSION_DIR", str(tmp_path / "sessions"))
    cfg = tmp_path / ".clibridge.yml"
    cfg.write_text("session_dir: /elsewhere\n")
    assert load_config(config_path=str(cfg))["session_dir"] == str(tmp_path / "sessions")


class TestSessionSettings:
    def test_per_tool_defaults(self):
        assert session_settings({}, "review-code") == {"ttl_hours": 24, "max_sessions": 20, "eviction_policy": "lru"}
        assert session_settings({}, "ask")["ttl_hours"] == 168
        assert session_settings({}, "brainstorm")["max_sessions"] == 30

    def test_unknown_tool_gets_fallback(self):
        assert session_settings({}, "other")["ttl_hours"] == 24

    def test_config_overrides_merge(self, tmp_path):
        cfg = tmp_path / ".clibridge.yml"
        cfg.write_text("sessions:\n  ask:\n    max_sessions: 5\n    eviction_policy: fifo\n")
        settings = session_settings(load_config(config_path=str(cfg)), "ask")
        assert settings == {"ttl_hours": 168, "max_sessions": 5, "eviction_policy": "fifo"}
