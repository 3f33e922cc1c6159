"""Deterministic container naming."""

from __future__ import annotations

from typing import TYPE_CHECKING

from agent_ide.engine import ContainerRef
from agent_ide.models import ContainerRole

if TYPE_CHECKING:
    from agent_ide.config import Settings


def container_name(settings: Settings, workspace_id: str, role: ContainerRole) -> str:
    """``<prefix>-<workspace_id>``, the same label the workspace's host uses."""
    prefix = settings.agent_host_prefix if role == ContainerRole.AGENT else settings.editor_host_prefix
    return f"{prefix.lower()}-{workspace_id}"


def container_ref(settings: Settings, workspace_id: str, role: ContainerRole) -> ContainerRef:
    return ContainerRef(name=container_name(settings, workspace_id, role))
