"""Persistence of workspace and environment state."""

from agent_ide.storage.base import StateStore
from agent_ide.storage.memory import InMemoryStateStore
from agent_ide.storage.redis_store import RedisStateStore

__all__ = ["InMemoryStateStore", "RedisStateStore", "StateStore"]
