"""Tests for settings and slot configuration."""

import pytest
from pydantic import ValidationError

from rigger.core.config import SLOT_NAMES, Settings


def test_defaults():
    settings = Settings(RIGGER_ENV="test")

    assert settings.COMPLEXITY_THRESHOLD == 7
    assert settings.MAX_CONCURRENT_TASKS == 4
    assert settings.MIN_SUBTASKS == 3
    assert settings.MAX_SUBTASKS == 5
    assert settings.ENHANCE_TOP_K == 3
    assert settings.DECOMPOSE_MIN_SIMILARITY == 0.7


def test_slot_config_defaults():
    settings = Settings(RIGGER_ENV="test")

    assert settings.slot_config("main") == ("ollama", "llama3.2", True)
    assert settings.slot_config("embedding") == ("ollama", "nomic-embed-text", True)
    assert settings.slot_config("vision")[2] is False


def test_every_slot_is_configurable():
    settings = Settings(RIGGER_ENV="test")

    for slot in SLOT_NAMES:
        provider, model, enabled = settings.slot_config(slot)
        assert provider
        assert model


def test_slot_provider_is_lowercased():
    settings = Settings(RIGGER_ENV="test", MAIN_PROVIDER="Anthropic", MAIN_MODEL="claude-sonnet")

    assert settings.slot_config("main") == ("anthropic", "claude-sonnet", True)


def test_unknown_slot():
    with pytest.raises(ValueError, match="Unknown task slot"):
        Settings(RIGGER_ENV="test").slot_config("summarizer")


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("COMPLEXITY_THRESHOLD", "5")
    monkeypatch.setenv("RESEARCH_PROVIDER", "openai")
    monkeypatch.setenv("RESEARCH_MODEL", "gpt-4o")

    settings = Settings()

    assert settings.COMPLEXITY_THRESHOLD == 5
    assert settings.slot_config("research") == ("openai", "gpt-4o", True)


def test_threshold_out_of_range_rejected():
    with pytest.raises(ValidationError):
        Settings(RIGGER_ENV="test", COMPLEXITY_THRESHOLD=11)


def test_zero_threshold_rejected():
    with pytest.raises(ValidationError):
        Settings(RIGGER_ENV="test", COMPLEXITY_THRESHOLD=0)
