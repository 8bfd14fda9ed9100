"""Tests for child environment filtering."""

from clibridge_core.utils.env import ALLOWED_ENV_VARS, allowed_env


def test_keeps_allow_listed_variables():
    env = allowed_env({"PATH": "/usr/bin", "HOME": "/home/u", "GEMINI_API_KEY": "k"})
    assert env == {"PATH": "/usr/bin", "HOME": "/home/u", "GEMINI_API_KEY": "k"}


def test_drops_everything_else():
    env = allowed_env({"PATH": "/usr/bin", "AWS_SECRET_ACCESS_KEY": "x", "GITHUB_TOKEN": "y"})
    assert env == {"PATH": "/usr/bin"}


def test_defaults_to_process_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("SOME_UNRELATED_TOKEN", "nope")
    env = allowed_env()
    assert env["OPENAI_API_KEY"] == "sk-test"
    assert "SOME_UNRELATED_TOKEN" not in env


def test_proxy_variables_pass_in_both_cases():
    assert {"HTTP_PROXY", "https_proxy", "NO_PROXY"} <= ALLOWED_ENV_VARS
