"""Pytest configuration and shared fixtures."""

import pytest


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run each test in an empty working directory without LLM/config env vars."""
    for var in [
        "LLM_KEY",
        "LLM_API_URL",
        "LLM_MODEL",
        "LLM_ADDITIONAL_MODEL",
        "STORAGE_TYPE",
        "STORAGE_ROOT",
        "PROMPTS_DIR",
        "CHAT_CORE_CONFIG_FILE",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
