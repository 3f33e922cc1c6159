"""In-process state store."""

from __future__ import annotations

from typing import TYPE_CHECKING

from agent_ide.storage.base import StateStore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from agent_ide.models import Environment, Workspace


class InMemoryStateStore(StateStore):
    """Dict-backed store for tests and single-process embedding.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._workspaces: dict[str, Workspace] = {}
        self._environments: dict[str, Environment] = {}
        self._links: dict[str, list[str]] = {}

    async def get_workspace(self, workspace_id: str) -> Workspace | None:
        workspace = self._workspaces.get(workspace_id)
        return workspace.model_copy(deep=True) if workspace else None

    async def save_workspace(self, workspace: Workspace) -> None:
        self._workspaces[workspace.id] = workspace.model_copy(deep=True)

    async def delete_workspace(self, workspace_id: str) -> None:
        self._workspaces.pop(workspace_id, None)
        self._links.pop(workspace_id, None)

    async def list_workspaces(self, owner_id: str | None = None) -> list[Workspace]:
        return [
            w.model_copy(deep=True)
            for w in self._workspaces.values()
            if owner_id is None or w.owner_id == owner_id
        ]

    async def get_environment(self, environment_id: str) -> Environment | None:
        environment = self._environments.get(environment_id)
        return environment.model_copy(deep=True) if environment else None

    async def save_environment(self, environment: Environment) -> None:
        self._environments[environment.id] = environment.model_copy(deep=True)

    async def delete_environment(self, environment_id: str) -> None:
        self._environments.pop(environment_id, None)
        for workspace_id, linked in self._links.items():
            self._links[workspace_id] = [e for e in linked if e != environment_id]

    async def list_environments(self, owner_id: str) -> list[Environment]:
        return [
            e.model_copy(deep=True)
            for e in self._environments.values()
            if e.owner_id == owner_id
        ]

    async def get_linked_environment_ids(self, workspace_id: str) -> list[str]:
        return list(self._links.get(workspace_id, []))

    async def replace_links(self, workspace_id: str, environment_ids: Sequence[str]) -> None:
        self._links[workspace_id] = list(environment_ids)

    async def list_linked_workspace_ids(self, environment_id: str) -> list[str]:
        return [wid for wid, linked in self._links.items() if environment_id in linked]
