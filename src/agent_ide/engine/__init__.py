"""Container engine access."""

from agent_ide.engine.client import (
    LABEL_MANAGED,
    LABEL_OWNER_ID,
    LABEL_ROLE,
    LABEL_WORKSPACE_ID,
    ContainerEngineClient,
    ContainerRef,
    ContainerSpec,
    ContainerState,
    ExecResult,
)
from agent_ide.engine.stream import STDERR, STDOUT, Frame, demultiplex, iter_frames

__all__ = [
    "LABEL_MANAGED",
    "LABEL_OWNER_ID",
    "LABEL_ROLE",
    "LABEL_WORKSPACE_ID",
    "STDERR",
    "STDOUT",
    "ContainerEngineClient",
    "ContainerRef",
    "ContainerSpec",
    "ContainerState",
    "ExecResult",
    "Frame",
    "demultiplex",
    "iter_frames",
]
