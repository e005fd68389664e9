"""Shared fixtures for routing-core tests."""

import fnmatch
import os
from unittest.mock import AsyncMock, MagicMock

import pytest


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "smoke: mark test as smoke test (fast, critical path - included in CI)"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring real services"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# Set test environment variables before importing modules
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test-key-12345")


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test-key-12345")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    # Route cache stays local unless a test wires a shared cache explicitly
    monkeypatch.delenv("VALKEY_URL", raising=False)
    monkeypatch.delenv("UPSTASH_REDIS_REST_URL", raising=False)
    monkeypatch.delenv("UPSTASH_REDIS_REST_TOKEN", raising=False)


class FakeSharedCache:
    """In-memory stand-in for a shared key-value cache."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=300):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key):
        return self.store.pop(key, None) is not None

    async def scan_delete(self, pattern):
        keys = [k for k in self.store if fnmatch.fnmatchcase(k, pattern)]
        for key in keys:
            del self.store[key]
        return len(keys)

    async def hget(self, name, field):
        return self.hashes.get(name, {}).get(field)

    async def hset(self, name, field, value):
        self.hashes.setdefault(name, {})[field] = value
        return True

    async def ping(self):
        return True


@pytest.fixture
def fake_shared_cache():
    """Create an in-memory shared cache."""
    return FakeSharedCache()


@pytest.fixture
def failing_shared_cache():
    """Create a shared cache whose every call raises."""
    cache = MagicMock()
    for name in ("get", "set", "delete", "scan_delete", "hget", "hset", "ping"):
        setattr(cache, name, AsyncMock(side_effect=ConnectionError("cache unreachable")))
    return cache


@pytest.fixture
def mock_completion_client():
    """Create a mock completion client returning a valid classification."""
    client = MagicMock()
    client.complete = AsyncMock(
        return_value='{"action": "create", "target": "task", "confidence": 0.9, "reasoning": "asks for a task"}'
    )
    return client


@pytest.fixture
def mock_async_anthropic_client():
    """Create a mock AsyncAnthropic client."""
    mock_client = AsyncMock()
    mock_response = MagicMock()
    mock_response.content = [MagicMock(text='{"action": "read", "target": "issue", "confidence": 0.8}')]
    mock_response.usage = MagicMock(input_tokens=100, output_tokens=50)
    mock_client.messages.create = AsyncMock(return_value=mock_response)
    return mock_client


@pytest.fixture
def sample_skill_payloads():
    """Registry payloads covering every runtime type."""
    return [
        {
            "slug": "linear-task",
            "name": "Linear Task",
            "description": "Create and update Linear issues",
            "runtime_type": "mcp",
            "triggers": ["linear", "issue", "ticket"],
            "required_tools": ["linear.create_issue"],
            "parameters": [
                {"name": "title", "type": "string", "required": True, "description": "Issue title"},
                {"name": "priority", "type": "number", "default": 2},
            ],
        },
        {
            "slug": "meeting-notes",
            "name": "Meeting Notes",
            "description": "Summarize meeting transcripts",
            "runtime_type": "prompt",
            "triggers": ["meeting", "notes", "회의록"],
            "outputs": [{"name": "summary", "type": "markdown"}],
        },
        {
            "slug": "weekly-report",
            "name": "Weekly Report",
            "runtime_type": "composite",
            "triggers": ["weekly report"],
            "dependencies": ["meeting-notes", "linear-task"],
        },
    ]


# Cleanup fixture
@pytest.fixture(autouse=True)
def cleanup():
    """Cleanup after each test."""
    yield
    # Reset any global state if needed
