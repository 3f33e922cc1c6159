"""State store interface.

The store persists desired state: workspace records, environments and the
ordered links between them. It never talks to the container engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from agent_ide.models import Environment, Workspace


class StateStore(ABC):
    """Async persistence for workspaces, environments and links."""

    # Workspaces

    @abstractmethod
    async def get_workspace(self, workspace_id: str) -> Workspace | None: ...

    @abstractmethod
    async def save_workspace(self, workspace: Workspace) -> None: ...

    @abstractmethod
    async def delete_workspace(self, workspace_id: str) -> None:
        """Remove the record and its environment links."""

    @abstractmethod
    async def list_workspaces(self, owner_id: str | None = None) -> list[Workspace]: ...

    # Environments

    @abstractmethod
    async def get_environment(self, environment_id: str) -> Environment | None: ...

    @abstractmethod
    async def save_environment(self, environment: Environment) -> None: ...

    @abstractmethod
    async def delete_environment(self, environment_id: str) -> None:
        """Remove the record; links pointing at it go with it."""

    @abstractmethod
    async def list_environments(self, owner_id: str) -> list[Environment]: ...

    # Links

    @abstractmethod
    async def get_linked_environment_ids(self, workspace_id: str) -> list[str]:
        """Linked environment ids in selection order."""

    @abstractmethod
    async def replace_links(self, workspace_id: str, environment_ids: Sequence[str]) -> None:
        """Drop every link of the workspace, then link ``environment_ids`` in order."""

    @abstractmethod
    async def list_linked_workspace_ids(self, environment_id: str) -> list[str]: ...

    async def get_linked_environments(self, workspace_id: str) -> list[Environment]:
        """Linked environments in selection order; missing records are skipped."""
        environments = []
        for environment_id in await self.get_linked_environment_ids(workspace_id):
            environment = await self.get_environment(environment_id)
            if environment is not None:
                environments.append(environment)
        return environments

    async def close(self) -> None:
        """Release connections held by the store."""
