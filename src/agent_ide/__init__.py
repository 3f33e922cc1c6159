"""Agent IDE workspace orchestration core."""

from agent_ide.environment_merge import merge_environments
from agent_ide.managers import (
    EnvironmentManager,
    SessionDiscoveryProbe,
    WorkspaceLifecycleManager,
)
from agent_ide.models import (
    ContainerRole,
    Environment,
    SessionProbeResult,
    SyncOutcome,
    SyncResult,
    Workspace,
    WorkspaceStatus,
)
from agent_ide.routing import RoutingDescriptor, build_routing_descriptor

__version__ = "0.1.0"

__all__ = [
    "ContainerRole",
    "Environment",
    "EnvironmentManager",
    "RoutingDescriptor",
    "SessionDiscoveryProbe",
    "SessionProbeResult",
    "SyncOutcome",
    "SyncResult",
    "Workspace",
    "WorkspaceLifecycleManager",
    "WorkspaceStatus",
    "__version__",
    "build_routing_descriptor",
    "merge_environments",
]
