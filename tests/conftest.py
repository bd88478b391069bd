"""Pytest configuration and fixtures for ThinkTank tests."""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from thinktank.config import Settings, reset_settings
from thinktank.conversation import ExperienceLevel, InMemoryConversationStore, Message, Persona


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text(
        """
api_keys:
  anthropic: test-anthropic-key
  openai: test-openai-key

scoring:
  lookback_messages: 8
  weights:
    relevance: 0.25
    expertise: 0.25
    participation_balance: 0.25
    flow: 0.25

reasoning:
  enabled: true
  provider: claude
  timeout_seconds: 2.5

autorun:
  message_ceiling: 40
"""
    )
    return config_path


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with API keys and defaults elsewhere."""
    reset_settings()
    return Settings(
        anthropic_api_key="test-anthropic-key",
        openai_api_key="test-openai-key",
    )


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables for testing."""
    original = {}
    env_vars = [
        "ANTHROPIC_API_KEY",
        "OPENAI_API_KEY",
        "THINKTANK_ANTHROPIC_API_KEY",
        "THINKTANK_OPENAI_API_KEY",
        "THINKTANK_REASONING__ENABLED",
        "THINKTANK_AUTORUN__MESSAGE_CEILING",
        "THINKTANK_AUTORUN__DEFAULT_STRATEGY",
    ]
    for var in env_vars:
        original[var] = os.environ.pop(var, None)

    reset_settings()

    yield

    for var, value in original.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]

    reset_settings()


@pytest.fixture
def alice() -> Persona:
    return Persona(
        id="alice",
        name="Alice",
        role="UX designer",
        experience_level=ExperienceLevel.ENTRY,
        expertise=["accessibility"],
    )


@pytest.fixture
def bob() -> Persona:
    return Persona(
        id="bob",
        name="Bob",
        role="engineer",
        experience_level=ExperienceLevel.MASTERY,
        expertise=["python", "databases"],
    )


@pytest.fixture
def carol() -> Persona:
    return Persona(
        id="carol",
        name="Carol",
        role="product manager",
        experience_level=ExperienceLevel.SENIOR,
        expertise=["roadmaps"],
    )


@pytest.fixture
def personas(alice: Persona, bob: Persona, carol: Persona) -> list[Persona]:
    """A three-persona roster."""
    return [alice, bob, carol]


@pytest.fixture
def store(personas: list[Persona]) -> InMemoryConversationStore:
    """In-memory store with one auto-mode conversation opened by the user."""
    store = InMemoryConversationStore()
    store.create(
        "conv-1",
        personas,
        user_id="user-1",
        messages=[Message.user("How should we launch the new onboarding flow?")],
    )
    return store
