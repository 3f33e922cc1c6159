"""Outcome types for best-effort operations."""

from enum import Enum

from pydantic import BaseModel, Field

from agent_ide.models.environment import Environment
from agent_ide.models.workspace import ContainerRole


class SyncOutcome(str, Enum):
    """How an environment sync ended.

    APPLIED: running containers received the new variables.
    DEFERRED: desired state saved; values apply on the next start.
    FAILED: the push errored; non-fatal, the workspace stays usable.
    """

    APPLIED = "applied"
    DEFERRED = "deferred"
    FAILED = "failed"


class SyncResult(BaseModel):
    """Result of pushing merged variables into a workspace."""

    workspace_id: str
    outcome: SyncOutcome
    variables: dict[str, str] = Field(default_factory=dict)
    containers: dict[ContainerRole, SyncOutcome] = Field(default_factory=dict)
    detail: str | None = None

    @property
    def applied(self) -> bool:
        return self.outcome == SyncOutcome.APPLIED


class SessionProbeResult(BaseModel):
    """Result of probing an agent container for its latest session."""

    workspace_id: str
    session_id: str | None = None
    strategy: str | None = None
    errors: list[str] = Field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.session_id is not None


class EnvironmentChangeResult(BaseModel):
    """An environment after a change, plus the re-syncs it triggered."""

    environment: Environment
    syncs: dict[str, SyncResult] = Field(default_factory=dict)
