"""Shared fixtures for orchestrator tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_ide.config import Settings
from agent_ide.engine import ContainerEngineClient, ContainerRef, ContainerState, ExecResult
from agent_ide.managers import EnvironmentManager, WorkspaceLifecycleManager
from agent_ide.models import Environment
from agent_ide.storage import InMemoryStateStore


@pytest.fixture
def settings() -> Settings:
    """Settings with short timeouts and no .env file."""
    return Settings(
        _env_file=None,
        readiness_timeout=1.0,
        readiness_poll_interval=0.01,
        exec_timeout=1.0,
        probe_timeout=1.0,
    )


@pytest.fixture
def mock_docker_client() -> MagicMock:
    """Create a mock Docker client."""
    mock = MagicMock()
    mock.ping.return_value = True
    mock.networks.get.return_value = MagicMock()
    mock.networks.create.return_value = MagicMock()
    mock.containers.list.return_value = []
    return mock


@pytest.fixture
def mock_container() -> MagicMock:
    """Create a mock Docker container."""
    mock = MagicMock()
    mock.id = "abc123def456"
    mock.name = "agent-ws1"
    mock.status = "running"
    mock.labels = {"agent-ide.workspace_id": "ws1", "agent-ide.role": "agent"}
    mock.attrs = {"State": {"Status": "running"}}
    return mock


def running(ref: ContainerRef) -> ContainerState:
    return ContainerState(name=ref.name, id=f"id-{ref.name}", status="running")


@pytest.fixture
def engine() -> AsyncMock:
    """Engine double whose containers come up healthy and whose execs succeed."""
    mock = AsyncMock(spec=ContainerEngineClient)
    mock.create_container.side_effect = lambda spec: ContainerRef(name=spec.name, id=f"id-{spec.name}")
    mock.inspect_container.side_effect = running
    mock.exec.return_value = ExecResult(exit_code=0, raw=b"")
    return mock


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def manager(engine: AsyncMock, store: InMemoryStateStore, settings: Settings) -> WorkspaceLifecycleManager:
    return WorkspaceLifecycleManager(engine, store, settings)


@pytest.fixture
def environments(
    store: InMemoryStateStore, manager: WorkspaceLifecycleManager
) -> EnvironmentManager:
    return EnvironmentManager(store, manager)


@pytest.fixture
def env_a() -> Environment:
    return Environment(id="env-a", owner_id="user-1", name="A", variables={"X": "1"})


@pytest.fixture
def env_b() -> Environment:
    return Environment(id="env-b", owner_id="user-1", name="B", variables={"X": "2", "Y": "9"})


@pytest.fixture
def foreign_env() -> Environment:
    return Environment(id="env-z", owner_id="user-2", name="Z", variables={"SECRET": "nope"})
