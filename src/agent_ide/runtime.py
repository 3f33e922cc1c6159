"""Wiring of the orchestrator's components."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from agent_ide.config import Settings, load_settings
from agent_ide.engine import ContainerEngineClient
from agent_ide.managers import EnvironmentManager, SessionDiscoveryProbe, WorkspaceLifecycleManager
from agent_ide.observability import configure_logging, init_sentry
from agent_ide.storage import InMemoryStateStore, RedisStateStore, StateStore

if TYPE_CHECKING:
    import docker

logger = structlog.get_logger()


@dataclass
class Orchestrator:
    """All components sharing one engine connection and one store."""

    settings: Settings
    engine: ContainerEngineClient
    store: StateStore
    probe: SessionDiscoveryProbe
    workspaces: WorkspaceLifecycleManager
    environments: EnvironmentManager

    async def close(self) -> None:
        await self.store.close()
        await self.engine.close()
        logger.info("Orchestrator closed")


def build_orchestrator(
    settings: Settings | None = None,
    store: StateStore | None = None,
    docker_client: docker.DockerClient | None = None,
) -> Orchestrator:
    """Build the orchestrator from settings.

    Logging and Sentry are configured here. Without an explicit store, Redis
    is used when ``redis_url`` is set and an in-memory store otherwise.
    """
    settings = settings or load_settings()

    sentry_enabled = init_sentry(settings)
    configure_logging(log_level=settings.log_level, json_format=settings.use_json_logs)

    if docker_client is not None:
        engine = ContainerEngineClient(docker_client)
    else:
        engine = ContainerEngineClient.from_settings(settings)

    if store is None:
        if settings.redis_url:
            store = RedisStateStore.from_url(settings.redis_url, settings.redis_key_prefix)
        else:
            logger.warning("No Redis URL configured, workspace state is kept in memory")
            store = InMemoryStateStore()

    probe = SessionDiscoveryProbe(engine, settings)
    workspaces = WorkspaceLifecycleManager(engine, store, settings, probe=probe)
    environments = EnvironmentManager(store, workspaces)

    logger.info(
        "Orchestrator ready",
        environment=settings.environment,
        domain=settings.domain,
        docker_host=settings.docker_host,
        store=type(store).__name__,
        sentry_enabled=sentry_enabled,
    )
    return Orchestrator(
        settings=settings,
        engine=engine,
        store=store,
        probe=probe,
        workspaces=workspaces,
        environments=environments,
    )
