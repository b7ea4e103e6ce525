"""Pytest configuration and fixtures."""

import os

import pytest

from rigger.core.config import Settings
from rigger.core.events import InMemoryEventPublisher
from rigger.db.artifacts import InMemoryArtifactStore
from rigger.db.tasks import InMemoryTaskRepository
from tests.fakes.fake_providers import EMBEDDING_DIM


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["RIGGER_ENV"] = "test"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["EMBEDDING_DIM"] = str(EMBEDDING_DIM)


@pytest.fixture
def settings():
    """Settings with test-sized embeddings and default orchestration policy."""
    return Settings(RIGGER_ENV="test", EMBEDDING_DIM=EMBEDDING_DIM)


@pytest.fixture
def repository():
    return InMemoryTaskRepository()


@pytest.fixture
def artifact_store():
    return InMemoryArtifactStore(dimension=EMBEDDING_DIM)


@pytest.fixture
def events():
    return InMemoryEventPublisher()
