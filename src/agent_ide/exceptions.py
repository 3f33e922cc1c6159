"""Exception hierarchy for the orchestration core."""

from __future__ import annotations

from agent_ide.validation import OwnershipError, ValidationError

__all__ = [
    "AgentIdeError",
    "CapacityError",
    "ContainerNotFoundError",
    "ContainerNotReadyError",
    "EngineError",
    "EngineTimeoutError",
    "EnvironmentNotFoundError",
    "InvalidStateError",
    "OwnershipError",
    "ValidationError",
    "WorkspaceNotFoundError",
    "WorkspaceOperationError",
]


class AgentIdeError(Exception):
    """Base class for orchestration errors."""


class WorkspaceNotFoundError(AgentIdeError, LookupError):
    """Workspace does not exist (or is not visible to the caller)."""

    def __init__(self, workspace_id: str) -> None:
        super().__init__(f"Workspace {workspace_id} not found")
        self.workspace_id = workspace_id


class EnvironmentNotFoundError(AgentIdeError, LookupError):
    """Environment does not exist (or is not visible to the caller)."""

    def __init__(self, environment_id: str) -> None:
        super().__init__(f"Environment {environment_id} not found")
        self.environment_id = environment_id


class InvalidStateError(AgentIdeError):
    """Operation is not allowed in the workspace's current status."""


class CapacityError(AgentIdeError):
    """No free port slot left for another workspace."""


class WorkspaceOperationError(AgentIdeError):
    """A caller-requested lifecycle transition failed."""

    def __init__(self, workspace_id: str, operation: str, detail: str) -> None:
        super().__init__(f"Failed to {operation} workspace {workspace_id}: {detail}")
        self.workspace_id = workspace_id
        self.operation = operation
        self.detail = detail


class EngineError(AgentIdeError):
    """Container engine call failed (connection refused, API error, ...)."""


class ContainerNotFoundError(EngineError):
    """The referenced container does not exist in the engine."""


class EngineTimeoutError(EngineError):
    """A container engine call did not complete within its timeout."""


class ContainerNotReadyError(EngineError):
    """A container never reached the ready state."""
