"""Orchestrator models."""

from agent_ide.models.environment import (
    Environment,
    WorkspaceEnvironmentLink,
    parse_variables,
)
from agent_ide.models.results import (
    EnvironmentChangeResult,
    SessionProbeResult,
    SyncOutcome,
    SyncResult,
)
from agent_ide.models.workspace import ContainerRole, Workspace, WorkspaceStatus

__all__ = [
    "ContainerRole",
    "Environment",
    "EnvironmentChangeResult",
    "SessionProbeResult",
    "SyncOutcome",
    "SyncResult",
    "Workspace",
    "WorkspaceEnvironmentLink",
    "WorkspaceStatus",
    "parse_variables",
]
