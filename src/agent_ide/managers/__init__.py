"""Workspace, environment and session managers."""

from agent_ide.managers.environments import EnvironmentManager
from agent_ide.managers.lifecycle import WorkspaceLifecycleManager
from agent_ide.managers.session_probe import SessionDiscoveryProbe

__all__ = ["EnvironmentManager", "SessionDiscoveryProbe", "WorkspaceLifecycleManager"]
