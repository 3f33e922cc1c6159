"""Workspace models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class WorkspaceStatus(str, Enum):
    """Workspace lifecycle status.

    creating -> running -> {stopped <-> running} -> deleted, with error
    reachable from a failed transition.
    """

    CREATING = "creating"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    DELETED = "deleted"


class ContainerRole(str, Enum):
    """The two containers backing every workspace."""

    AGENT = "agent"
    EDITOR = "editor"


def utc_now() -> datetime:
    return datetime.now(UTC)


class Workspace(BaseModel):
    """Persisted desired state of a workspace."""

    id: str
    owner_id: str
    name: str
    repo_url: str
    branch: str = "main"
    status: WorkspaceStatus = WorkspaceStatus.CREATING
    agent_port: int
    editor_port: int
    error_detail: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def port_for(self, role: ContainerRole) -> int:
        """Assigned port of the container playing ``role``."""
        return self.agent_port if role == ContainerRole.AGENT else self.editor_port

    def transition(self, status: WorkspaceStatus, error_detail: str | None = None) -> None:
        """Move to ``status``; the error detail is kept only for ERROR."""
        self.status = status
        self.error_detail = error_detail if status == WorkspaceStatus.ERROR else None
        self.updated_at = utc_now()
