"""
Shared pytest fixtures for all tests.
"""
import tempfile
from pathlib import Path
from typing import Iterator

import pytest
import pytest_asyncio

from agent.llm import LLMService
from agent.tools import ToolContext, create_tool_registry
from config import AgentConfig, Config, SandboxConfig, create_provider_registry
from core.events import RecordingEventBus
from core.sessions import SessionStateManager
from core.store import MemorySessionStore
from helpers import ScriptedChat

SESSION_ID = "session-1"


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def temp_file(temp_dir: Path) -> Path:
    """Create a temporary file for testing."""
    file_path = temp_dir / "test_file.txt"
    file_path.write_text("Hello, World!\nThis is a test file.\nLine 3\n")
    return file_path


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up mock environment variables for testing."""
    # Set test API keys to avoid requiring real credentials
    monkeypatch.setenv("OPENAI_API_KEY", "test-key-123")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key-123")
    return monkeypatch


@pytest.fixture
def config(temp_dir: Path) -> Config:
    """Config with aux hints off and fast sandbox polling."""
    return Config(
        agent=AgentConfig(topic_detection=False, personas_dir=str(temp_dir / ".personas")),
        sandbox=SandboxConfig(poll_interval_ms=50, grace_kill_ms=500),
    )


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def sessions(store: MemorySessionStore, event_bus: RecordingEventBus) -> SessionStateManager:
    return SessionStateManager(store, event_bus=event_bus, ttl_seconds=60)


@pytest.fixture
def scripted() -> ScriptedChat:
    return ScriptedChat()


@pytest.fixture
def llm(config: Config, sessions: SessionStateManager, scripted: ScriptedChat) -> LLMService:
    return LLMService(config, create_provider_registry(), sessions, chat_fn=scripted)


@pytest_asyncio.fixture
async def session_id(sessions: SessionStateManager, temp_dir: Path) -> str:
    """A persisted session whose working directory is ``temp_dir``."""
    await sessions.create_session(SESSION_ID, str(temp_dir))
    return SESSION_ID


@pytest_asyncio.fixture
async def tool_context(session_id: str, sessions, llm, config, temp_dir: Path) -> ToolContext:
    return ToolContext(
        session_id=session_id,
        working_directory=str(temp_dir),
        sessions=sessions,
        llm=llm,
        config=config,
        registry=create_tool_registry(),
    )
