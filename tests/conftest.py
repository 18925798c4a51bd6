"""Pytest configuration and fixtures."""

import os

import pytest

from docrefine.core.config import get_settings
from docrefine.core.session import DocumentSession
from docrefine.db.kv_store import InMemoryStore
from docrefine.db.session_store import SessionStore
from docrefine.services.workflow_orchestrator import WorkflowOrchestrator
from tests.fakes.fake_ingestor import FakeIngestor
from tests.fakes.fake_provider import ScriptedProvider, sample_document


@pytest.fixture(scope="session", autouse=True)
def setup_test_env(tmp_path_factory):
    """Set up test environment variables."""
    os.environ["DOCREFINE_ENV"] = "test"
    os.environ["DEFAULT_PROVIDER"] = "gemini"
    os.environ["GEMINI_API_KEY"] = "test-gemini-key"
    os.environ["OPENROUTER_API_KEY"] = "test-openrouter-key"
    os.environ["COST_LOOKUP_DELAY_SECONDS"] = "0"
    os.environ["STATE_DIR"] = str(tmp_path_factory.mktemp("state"))
    get_settings.cache_clear()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def ingestor():
    return FakeIngestor()


@pytest.fixture
def store():
    return SessionStore(InMemoryStore())


@pytest.fixture
def orchestrator(provider, ingestor, store):
    """Orchestrator with a selected document and scripted collaborators."""
    orch = WorkflowOrchestrator(
        session=DocumentSession(),
        provider=provider,
        ingestor=ingestor,
        store=store,
        settings=get_settings(),
    )
    orch.select_document(sample_document())
    return orch
