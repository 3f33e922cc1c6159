"""Environment management.

Environments are owned by a user and shared by any number of that user's
workspaces. Changing or deleting one re-syncs the running workspaces that
link it.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import structlog

from agent_ide.exceptions import (
    AgentIdeError,
    EnvironmentNotFoundError,
    ValidationError,
    WorkspaceNotFoundError,
)
from agent_ide.models import (
    Environment,
    EnvironmentChangeResult,
    SyncResult,
    WorkspaceStatus,
    parse_variables,
)
from agent_ide.models.workspace import utc_now
from agent_ide.validation import validate_environment_id, validate_owner_id

if TYPE_CHECKING:
    from agent_ide.managers.lifecycle import WorkspaceLifecycleManager
    from agent_ide.storage import StateStore

logger = structlog.get_logger()


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Environment name is required")
    return cleaned


def _clean_description(description: str | None) -> str | None:
    if description is None:
        return None
    return description.strip() or None


class EnvironmentManager:
    """CRUD for environments with re-sync of linked running workspaces."""

    def __init__(self, store: StateStore, workspaces: WorkspaceLifecycleManager) -> None:
        self._store = store
        self._workspaces = workspaces

    async def get_environment(self, environment_id: str, owner_id: str) -> Environment:
        """Load an environment visible to ``owner_id``.

        Raises:
            EnvironmentNotFoundError: If it does not exist or belongs to
                someone else
        """
        validate_environment_id(environment_id)
        validate_owner_id(owner_id)
        environment = await self._store.get_environment(environment_id)
        if environment is None or environment.owner_id != owner_id:
            raise EnvironmentNotFoundError(environment_id)
        return environment

    async def list_environments(self, owner_id: str) -> list[Environment]:
        """The owner's environments, most recently updated first."""
        validate_owner_id(owner_id)
        environments = await self._store.list_environments(owner_id)
        return sorted(environments, key=lambda e: e.updated_at, reverse=True)

    async def list_workspace_environments(
        self, workspace_id: str, owner_id: str
    ) -> list[Environment]:
        """Environments linked to a workspace, in precedence order."""
        validate_owner_id(owner_id)
        workspace = await self._workspaces.get_workspace(workspace_id)
        if workspace.owner_id != owner_id:
            raise WorkspaceNotFoundError(workspace_id)
        return await self._store.get_linked_environments(workspace_id)

    async def create_environment(
        self,
        owner_id: str,
        name: str,
        variables: Any = None,
        description: str | None = None,
    ) -> Environment:
        """Create an environment.

        Raises:
            ValidationError: On a missing name or malformed variables
        """
        validate_owner_id(owner_id)
        environment = Environment(
            id=f"env_{uuid.uuid4().hex[:12]}",
            owner_id=owner_id,
            name=_clean_name(name),
            description=_clean_description(description),
            variables=parse_variables(variables, strict=True),
        )
        await self._store.save_environment(environment)
        logger.info(
            "Environment created",
            environment_id=environment.id,
            owner_id=owner_id,
            variables=len(environment.variables),
        )
        return environment

    async def update_environment(
        self,
        environment_id: str,
        owner_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        variables: Any = None,
    ) -> EnvironmentChangeResult:
        """Update the given fields, then re-sync running workspaces linking it.

        Re-sync failures are reported per workspace and never fail the update.
        """
        environment = await self.get_environment(environment_id, owner_id)

        if name is not None:
            environment.name = _clean_name(name)
        if description is not None:
            environment.description = _clean_description(description)
        if variables is not None:
            environment.variables = parse_variables(variables, strict=True)
        environment.updated_at = utc_now()

        await self._store.save_environment(environment)
        logger.info("Environment updated", environment_id=environment_id, owner_id=owner_id)

        syncs = await self._resync_linked(await self._store.list_linked_workspace_ids(environment_id))
        return EnvironmentChangeResult(environment=environment, syncs=syncs)

    async def delete_environment(self, environment_id: str, owner_id: str) -> EnvironmentChangeResult:
        """Delete an environment; its links go with it."""
        environment = await self.get_environment(environment_id, owner_id)
        linked = await self._store.list_linked_workspace_ids(environment_id)

        await self._store.delete_environment(environment_id)
        logger.info(
            "Environment deleted",
            environment_id=environment_id,
            owner_id=owner_id,
            linked_workspaces=len(linked),
        )

        syncs = await self._resync_linked(linked)
        return EnvironmentChangeResult(environment=environment, syncs=syncs)

    async def _resync_linked(self, workspace_ids: list[str]) -> dict[str, SyncResult]:
        syncs: dict[str, SyncResult] = {}
        for workspace_id in workspace_ids:
            workspace = await self._store.get_workspace(workspace_id)
            if workspace is None or workspace.status != WorkspaceStatus.RUNNING:
                continue
            try:
                syncs[workspace_id] = await self._workspaces.sync_environments(workspace_id)
            except AgentIdeError as e:
                logger.warning(
                    "Failed to re-sync workspace after environment change",
                    workspace_id=workspace_id,
                    error=str(e),
                )
        return syncs
