"""Shared pytest fixtures."""

import pytest

from agentic_chatbot.agent import guidance
from agentic_chatbot.config import settings


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Run every test in an empty directory with no domain guidance and default limits."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(settings, "DOMAIN_PROMPT_PATH", None)
    monkeypatch.setattr(settings, "RESPONSE_TIMEOUT_SECONDS", 5.0)
    monkeypatch.setattr(settings, "MAX_TOOL_ROUNDTRIPS", 3)
    monkeypatch.setattr(settings, "MAX_GENERATION_CALLS", 4)
    guidance.reset_domain_instruction_cache()
    yield
    guidance.reset_domain_instruction_cache()
