"""Redis-backed state store.

Layout (all keys under the configured prefix):

    {p}:workspace:{id}                 hash, JSON blob in field "data"
    {p}:workspaces                     set of workspace ids
    {p}:workspace:owner:{owner_id}     set of workspace ids
    {p}:workspace:{id}:environments    list of environment ids, selection order
    {p}:environment:{id}               hash, JSON blob in field "data"
    {p}:environment:owner:{owner_id}   set of environment ids
    {p}:environment:{id}:workspaces    set of workspace ids linking it
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
import structlog

from agent_ide.models import Environment, Workspace
from agent_ide.storage.base import StateStore

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = structlog.get_logger()


class RedisStateStore(StateStore):
    """State store on top of ``redis.asyncio``."""

    def __init__(self, client: Any, key_prefix: str = "agent_ide") -> None:
        self._redis = client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "agent_ide") -> RedisStateStore:
        client = redis.from_url(url, decode_responses=True)  # type: ignore[no-untyped-call]
        logger.info("Connected to Redis", url=url)
        return cls(client, key_prefix)

    # Keys

    def _workspace_key(self, workspace_id: str) -> str:
        return f"{self._prefix}:workspace:{workspace_id}"

    def _workspaces_key(self) -> str:
        return f"{self._prefix}:workspaces"

    def _workspace_owner_key(self, owner_id: str) -> str:
        return f"{self._prefix}:workspace:owner:{owner_id}"

    def _links_key(self, workspace_id: str) -> str:
        return f"{self._prefix}:workspace:{workspace_id}:environments"

    def _environment_key(self, environment_id: str) -> str:
        return f"{self._prefix}:environment:{environment_id}"

    def _environment_owner_key(self, owner_id: str) -> str:
        return f"{self._prefix}:environment:owner:{owner_id}"

    def _backlinks_key(self, environment_id: str) -> str:
        return f"{self._prefix}:environment:{environment_id}:workspaces"

    async def _read(self, key: str) -> dict[str, Any] | None:
        data_json = await self._redis.hget(key, "data")
        if not data_json:
            return None
        try:
            data = json.loads(data_json)
        except json.JSONDecodeError:
            logger.exception("Failed to decode record from Redis", key=key)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object record in Redis", key=key)
            return None
        return data

    # Workspaces

    async def get_workspace(self, workspace_id: str) -> Workspace | None:
        data = await self._read(self._workspace_key(workspace_id))
        if data is None:
            return None
        try:
            return Workspace.model_validate(data)
        except ValueError:
            logger.exception("Invalid workspace record in Redis", workspace_id=workspace_id)
            return None

    async def save_workspace(self, workspace: Workspace) -> None:
        data = workspace.model_dump(mode="json")
        await self._redis.hset(self._workspace_key(workspace.id), "data", json.dumps(data))
        await self._redis.sadd(self._workspaces_key(), workspace.id)
        await self._redis.sadd(self._workspace_owner_key(workspace.owner_id), workspace.id)

    async def delete_workspace(self, workspace_id: str) -> None:
        workspace = await self.get_workspace(workspace_id)

        for environment_id in await self.get_linked_environment_ids(workspace_id):
            await self._redis.srem(self._backlinks_key(environment_id), workspace_id)
        await self._redis.delete(self._links_key(workspace_id))
        await self._redis.delete(self._workspace_key(workspace_id))
        await self._redis.srem(self._workspaces_key(), workspace_id)
        if workspace:
            await self._redis.srem(self._workspace_owner_key(workspace.owner_id), workspace_id)

    async def _load_workspaces(self, workspace_ids: Iterable[str]) -> list[Workspace]:
        results = []
        for workspace_id in workspace_ids:
            workspace = await self.get_workspace(workspace_id)
            if workspace:
                results.append(workspace)
        return results

    async def list_workspaces(self, owner_id: str | None = None) -> list[Workspace]:
        key = self._workspace_owner_key(owner_id) if owner_id else self._workspaces_key()
        ids = await self._redis.smembers(key)
        return await self._load_workspaces(sorted(ids))

    # Environments

    async def get_environment(self, environment_id: str) -> Environment | None:
        data = await self._read(self._environment_key(environment_id))
        if data is None:
            return None
        try:
            return Environment.model_validate(data)
        except ValueError:
            logger.exception("Invalid environment record in Redis", environment_id=environment_id)
            return None

    async def save_environment(self, environment: Environment) -> None:
        data = environment.model_dump(mode="json")
        await self._redis.hset(
            self._environment_key(environment.id), "data", json.dumps(data)
        )
        await self._redis.sadd(self._environment_owner_key(environment.owner_id), environment.id)

    async def delete_environment(self, environment_id: str) -> None:
        environment = await self.get_environment(environment_id)

        for workspace_id in await self.list_linked_workspace_ids(environment_id):
            await self._redis.lrem(self._links_key(workspace_id), 0, environment_id)
        await self._redis.delete(self._backlinks_key(environment_id))
        await self._redis.delete(self._environment_key(environment_id))
        if environment:
            await self._redis.srem(
                self._environment_owner_key(environment.owner_id), environment_id
            )

    async def list_environments(self, owner_id: str) -> list[Environment]:
        ids = await self._redis.smembers(self._environment_owner_key(owner_id))
        results = []
        for environment_id in sorted(ids):
            environment = await self.get_environment(environment_id)
            if environment:
                results.append(environment)
        return results

    # Links

    async def get_linked_environment_ids(self, workspace_id: str) -> list[str]:
        return list(await self._redis.lrange(self._links_key(workspace_id), 0, -1))

    async def replace_links(self, workspace_id: str, environment_ids: Sequence[str]) -> None:
        for environment_id in await self.get_linked_environment_ids(workspace_id):
            await self._redis.srem(self._backlinks_key(environment_id), workspace_id)
        await self._redis.delete(self._links_key(workspace_id))

        if not environment_ids:
            return
        await self._redis.rpush(self._links_key(workspace_id), *environment_ids)
        for environment_id in environment_ids:
            await self._redis.sadd(self._backlinks_key(environment_id), workspace_id)

    async def list_linked_workspace_ids(self, environment_id: str) -> list[str]:
        return sorted(await self._redis.smembers(self._backlinks_key(environment_id)))

    async def close(self) -> None:
        await self._redis.aclose()
