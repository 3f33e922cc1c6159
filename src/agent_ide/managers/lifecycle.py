"""Workspace lifecycle management.

A workspace is one agent container plus one editor container, reachable via
two virtual hosts. The store holds the desired state; the engine holds the
actual state. Every transition of a workspace runs under that workspace's
lock, and the store is only moved forward once the engine outcome is known.
"""

from __future__ import annotations

import asyncio
import base64
import shlex
import uuid
from typing import TYPE_CHECKING

import structlog

from agent_ide.engine import (
    LABEL_MANAGED,
    LABEL_OWNER_ID,
    LABEL_ROLE,
    LABEL_WORKSPACE_ID,
    ContainerRef,
    ContainerSpec,
    ContainerState,
)
from agent_ide.environment_merge import merge_environments, render_env_file
from agent_ide.exceptions import (
    CapacityError,
    ContainerNotFoundError,
    ContainerNotReadyError,
    EngineError,
    InvalidStateError,
    OwnershipError,
    ValidationError,
    WorkspaceNotFoundError,
    WorkspaceOperationError,
)
from agent_ide.managers.naming import container_ref
from agent_ide.managers.session_probe import SessionDiscoveryProbe
from agent_ide.models import (
    ContainerRole,
    SessionProbeResult,
    SyncOutcome,
    SyncResult,
    Workspace,
    WorkspaceStatus,
)
from agent_ide.routing import RoutingDescriptor, build_routing_descriptor
from agent_ide.validation import (
    validate_environment_id,
    validate_owner_id,
    validate_workspace_id,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from agent_ide.config import Settings
    from agent_ide.engine import ContainerEngineClient
    from agent_ide.storage import StateStore

logger = structlog.get_logger()

# Engine statuses after which a container will not become ready on its own
TERMINAL_CONTAINER_STATUSES = ("exited", "dead")


class WorkspaceLifecycleManager:
    """Creates, starts, stops, deletes and re-syncs workspaces."""

    def __init__(
        self,
        engine: ContainerEngineClient,
        store: StateStore,
        settings: Settings,
        probe: SessionDiscoveryProbe | None = None,
    ) -> None:
        self._engine = engine
        self._store = store
        self._settings = settings
        self._probe = probe or SessionDiscoveryProbe(engine, settings)
        self._workspace_locks: dict[str, asyncio.Lock] = {}
        self._allocation_lock = asyncio.Lock()

    def _get_workspace_lock(self, workspace_id: str) -> asyncio.Lock:
        """Get or create the lock serializing operations on one workspace."""
        validate_workspace_id(workspace_id)
        if workspace_id not in self._workspace_locks:
            self._workspace_locks[workspace_id] = asyncio.Lock()
        return self._workspace_locks[workspace_id]

    # Queries

    async def get_workspace(self, workspace_id: str) -> Workspace:
        """Load a workspace record, including soft-deleted ones.

        Raises:
            ValidationError: If the id is invalid
            WorkspaceNotFoundError: If there is no such record
        """
        validate_workspace_id(workspace_id)
        workspace = await self._store.get_workspace(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        return workspace

    async def list_workspaces(
        self, owner_id: str | None = None, include_deleted: bool = False
    ) -> list[Workspace]:
        if owner_id is not None:
            validate_owner_id(owner_id)
        workspaces = await self._store.list_workspaces(owner_id)
        if not include_deleted:
            workspaces = [w for w in workspaces if w.status != WorkspaceStatus.DELETED]
        return sorted(workspaces, key=lambda w: w.created_at)

    async def _get_active_workspace(self, workspace_id: str) -> Workspace:
        workspace = await self.get_workspace(workspace_id)
        if workspace.status == WorkspaceStatus.DELETED:
            raise InvalidStateError(f"Workspace {workspace_id} is deleted")
        return workspace

    def get_routing_descriptor(self, workspace_id: str) -> RoutingDescriptor:
        """Routing of a workspace id, whether or not it exists."""
        return build_routing_descriptor(
            workspace_id,
            self._settings.domain,
            agent_port=self._settings.agent_internal_port,
            editor_port=self._settings.editor_internal_port,
            agent_prefix=self._settings.agent_host_prefix,
            editor_prefix=self._settings.editor_host_prefix,
        )

    async def get_routing(self, workspace_id: str) -> RoutingDescriptor:
        await self.get_workspace(workspace_id)
        return self.get_routing_descriptor(workspace_id)

    async def get_session(self, workspace_id: str) -> SessionProbeResult:
        """Latest agent session of a running workspace.

        Non-running workspaces have no session to find, so the probe is
        skipped and an absent result returned.
        """
        workspace = await self.get_workspace(workspace_id)
        if workspace.status != WorkspaceStatus.RUNNING:
            return SessionProbeResult(workspace_id=workspace_id)
        return await self._probe.probe(workspace_id)

    # Creation

    async def create_workspace(
        self,
        owner_id: str,
        name: str,
        repo_url: str,
        branch: str = "main",
        environment_ids: Sequence[str] = (),
        workspace_id: str | None = None,
    ) -> Workspace:
        """Provision a new workspace and wait until both containers are ready.

        Args:
            owner_id: Owning user
            name: Display name
            repo_url: Repository the workspace works on
            branch: Branch to check out
            environment_ids: Environments to attach, in precedence order
            workspace_id: Explicit id; generated when omitted

        Returns:
            The running workspace

        Raises:
            ValidationError: On invalid input (nothing is touched)
            OwnershipError: If an environment is not the owner's
            CapacityError: If every port slot is taken
            WorkspaceOperationError: If provisioning failed; the record is
                left in ``error`` with the failure detail
        """
        validate_owner_id(owner_id)
        workspace_id = workspace_id or uuid.uuid4().hex[:12]
        # Also checks that both hosts fit in a DNS label
        self.get_routing_descriptor(workspace_id)

        name = name.strip()
        if not name:
            raise ValidationError("Workspace name is required")
        repo_url = repo_url.strip()
        if not repo_url:
            raise ValidationError("Repository URL is required")
        branch = branch.strip() or "main"

        environment_ids = await self._check_environment_ids(owner_id, environment_ids)

        async with self._get_workspace_lock(workspace_id):
            async with self._allocation_lock:
                if await self._store.get_workspace(workspace_id) is not None:
                    raise ValidationError(f"Workspace {workspace_id} already exists")
                slot = await self._allocate_slot()
                workspace = Workspace(
                    id=workspace_id,
                    owner_id=owner_id,
                    name=name,
                    repo_url=repo_url,
                    branch=branch,
                    agent_port=self._settings.workspace_base_port + slot,
                    editor_port=self._settings.editor_base_port + slot,
                )
                await self._store.save_workspace(workspace)
            await self._store.replace_links(workspace_id, environment_ids)

            logger.info(
                "Creating workspace",
                workspace_id=workspace_id,
                owner_id=owner_id,
                environments=len(environment_ids),
                agent_port=workspace.agent_port,
                editor_port=workspace.editor_port,
            )
            await self._provision(workspace, "create")
            return workspace

    async def recreate_workspace(self, workspace_id: str) -> Workspace:
        """Tear down whatever is left of a workspace and provision it again.

        The retry path for workspaces in ``error``. Also the way to bake
        changed variables into the containers' own environment.
        """
        async with self._get_workspace_lock(workspace_id):
            workspace = await self._get_active_workspace(workspace_id)
            logger.info(
                "Recreating workspace",
                workspace_id=workspace_id,
                previous_status=workspace.status.value,
            )
            workspace.transition(WorkspaceStatus.CREATING)
            await self._store.save_workspace(workspace)
            await self._provision(workspace, "recreate")
            return workspace

    async def _allocate_slot(self) -> int:
        """Smallest port slot not used by a live workspace. Caller holds the allocation lock."""
        used = {
            w.agent_port - self._settings.workspace_base_port
            for w in await self._store.list_workspaces()
            if w.status != WorkspaceStatus.DELETED
        }
        for slot in range(self._settings.max_workspaces):
            if slot not in used:
                return slot
        raise CapacityError(f"Maximum workspaces ({self._settings.max_workspaces}) reached")

    async def _check_environment_ids(
        self, owner_id: str, environment_ids: Sequence[str]
    ) -> list[str]:
        """Validate an ordered environment selection; any bad id rejects it all."""
        ids = list(environment_ids)
        for environment_id in ids:
            validate_environment_id(environment_id)
        if len(set(ids)) != len(ids):
            raise ValidationError("Environment selection contains duplicates")

        for environment_id in ids:
            environment = await self._store.get_environment(environment_id)
            if environment is None or environment.owner_id != owner_id:
                raise OwnershipError(f"Environment {environment_id} not found or not owned")
        return ids

    def _container_spec(
        self, workspace: Workspace, role: ContainerRole, variables: dict[str, str]
    ) -> ContainerSpec:
        settings = self._settings
        routing = self.get_routing_descriptor(workspace.id)

        if role == ContainerRole.AGENT:
            image, command = settings.agent_image, settings.agent_command
            internal_port = settings.agent_internal_port
        else:
            image, command = settings.editor_image, settings.editor_command
            internal_port = settings.editor_internal_port

        labels = {
            LABEL_MANAGED: "true",
            LABEL_WORKSPACE_ID: workspace.id,
            LABEL_OWNER_ID: workspace.owner_id,
            LABEL_ROLE: role.value,
            **routing.labels_for(
                role,
                network=settings.docker_network,
                entrypoints=settings.traefik_entrypoints,
                cert_resolver=settings.traefik_cert_resolver,
            ),
        }
        environment = {
            "WORKSPACE_ID": workspace.id,
            "REPO_URL": workspace.repo_url,
            "REPO_BRANCH": workspace.branch,
            **variables,
        }
        ports = None
        if settings.publish_ports:
            ports = {f"{internal_port}/tcp": workspace.port_for(role)}

        return ContainerSpec(
            name=routing.rule_for(role).router_name,
            image=image,
            environment=environment,
            labels=labels,
            network=settings.docker_network,
            ports=ports,
            command=command,
        )

    async def _provision(self, workspace: Workspace, operation: str) -> None:
        """Create and start both containers. Caller holds the workspace lock."""
        variables = merge_environments(await self._store.get_linked_environments(workspace.id))
        created: list[ContainerRef] = []

        try:
            await self._engine.ensure_network(self._settings.docker_network)
            # Leftovers of an earlier failed attempt hold the names
            await self._remove_containers(workspace.id)

            for role in ContainerRole:
                spec = self._container_spec(workspace, role, variables)
                created.append(await self._engine.create_container(spec))
            for ref in created:
                await self._engine.start_container(ref)
            for ref in created:
                await self._wait_until_ready(ref)
        except EngineError as e:
            logger.exception(
                "Workspace provisioning failed, cleaning up",
                workspace_id=workspace.id,
                operation=operation,
            )
            for ref in created:
                try:
                    await self._engine.remove_container(ref, force=True)
                except EngineError as cleanup_error:
                    logger.warning(
                        "Failed to clean up container after provisioning failure",
                        workspace_id=workspace.id,
                        container=ref.name,
                        cleanup_error=str(cleanup_error),
                    )
            workspace.transition(WorkspaceStatus.ERROR, error_detail=str(e))
            await self._store.save_workspace(workspace)
            raise WorkspaceOperationError(workspace.id, operation, str(e)) from e

        workspace.transition(WorkspaceStatus.RUNNING)
        await self._store.save_workspace(workspace)
        logger.info(
            "Workspace running",
            workspace_id=workspace.id,
            operation=operation,
            variables=len(variables),
        )

    async def _wait_until_ready(self, ref: ContainerRef) -> ContainerState:
        """Poll until the container runs and, if it has a healthcheck, is healthy."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.readiness_timeout

        while True:
            state = await self._engine.inspect_container(ref)
            if state.ready:
                return state
            if state.status in TERMINAL_CONTAINER_STATUSES:
                raise ContainerNotReadyError(f"Container {ref.name} {state.status}")
            if loop.time() >= deadline:
                raise ContainerNotReadyError(
                    f"Container {ref.name} not ready after {self._settings.readiness_timeout}s "
                    f"(status={state.status}, health={state.health})"
                )
            await asyncio.sleep(self._settings.readiness_poll_interval)

    async def _remove_containers(self, workspace_id: str) -> None:
        """Force-remove both containers; absent ones are already gone."""
        for role in ContainerRole:
            ref = container_ref(self._settings, workspace_id, role)
            try:
                await self._engine.remove_container(ref, force=True)
                logger.debug("Removed container", workspace_id=workspace_id, container=ref.name)
            except ContainerNotFoundError:
                pass

    # Transitions

    async def start_workspace(self, workspace_id: str) -> Workspace:
        """Start a stopped workspace; a running one is left alone.

        Raises:
            InvalidStateError: If the workspace is deleted
            WorkspaceOperationError: If a container failed to start; the
                record moves to ``error``
        """
        async with self._get_workspace_lock(workspace_id):
            workspace = await self._get_active_workspace(workspace_id)
            if workspace.status == WorkspaceStatus.RUNNING:
                logger.debug("Workspace already running", workspace_id=workspace_id)
                return workspace

            refs = [container_ref(self._settings, workspace_id, role) for role in ContainerRole]
            try:
                for ref in refs:
                    await self._engine.start_container(ref)
                for ref in refs:
                    await self._wait_until_ready(ref)
            except EngineError as e:
                logger.exception("Failed to start workspace", workspace_id=workspace_id)
                workspace.transition(WorkspaceStatus.ERROR, error_detail=str(e))
                await self._store.save_workspace(workspace)
                raise WorkspaceOperationError(workspace_id, "start", str(e)) from e

            workspace.transition(WorkspaceStatus.RUNNING)
            await self._store.save_workspace(workspace)
            logger.info("Workspace started", workspace_id=workspace_id)

            # Links may have changed while stopped
            await self._sync_locked(workspace)
            return workspace

    async def stop_workspace(self, workspace_id: str) -> Workspace:
        """Stop both containers with the configured grace period.

        Idempotent: stopping a stopped workspace does nothing, and a missing
        container counts as stopped. The status only changes once both
        containers are confirmed stopped.

        Raises:
            InvalidStateError: If the workspace is deleted
            WorkspaceOperationError: If the engine failed; status unchanged
        """
        async with self._get_workspace_lock(workspace_id):
            workspace = await self._get_active_workspace(workspace_id)
            if workspace.status == WorkspaceStatus.STOPPED:
                logger.debug("Workspace already stopped", workspace_id=workspace_id)
                return workspace

            try:
                for role in ContainerRole:
                    ref = container_ref(self._settings, workspace_id, role)
                    try:
                        await self._engine.stop_container(ref, timeout=self._settings.stop_timeout)
                        state = await self._engine.inspect_container(ref)
                    except ContainerNotFoundError:
                        logger.warning(
                            "Container not found while stopping",
                            workspace_id=workspace_id,
                            container=ref.name,
                        )
                        continue
                    if state.running:
                        raise EngineError(f"Container {ref.name} still running after stop")
            except EngineError as e:
                logger.exception("Failed to stop workspace", workspace_id=workspace_id)
                raise WorkspaceOperationError(workspace_id, "stop", str(e)) from e

            workspace.transition(WorkspaceStatus.STOPPED)
            await self._store.save_workspace(workspace)
            logger.info("Workspace stopped", workspace_id=workspace_id)
            return workspace

    async def delete_workspace(self, workspace_id: str, purge: bool = False) -> Workspace:
        """Remove both containers and retire the workspace.

        Containers that are already gone count as removed. With ``purge`` the
        record and its links are dropped from the store; otherwise the record
        stays as ``deleted`` and its port slot is released.

        Raises:
            WorkspaceOperationError: If the engine failed; status unchanged
        """
        async with self._get_workspace_lock(workspace_id):
            workspace = await self.get_workspace(workspace_id)

            if workspace.status != WorkspaceStatus.DELETED:
                try:
                    await self._remove_containers(workspace_id)
                except EngineError as e:
                    logger.exception("Failed to delete workspace", workspace_id=workspace_id)
                    raise WorkspaceOperationError(workspace_id, "delete", str(e)) from e
                workspace.transition(WorkspaceStatus.DELETED)

            if purge:
                await self._store.delete_workspace(workspace_id)
                self._workspace_locks.pop(workspace_id, None)
            else:
                await self._store.save_workspace(workspace)
                await self._store.replace_links(workspace_id, [])

            logger.info("Workspace deleted", workspace_id=workspace_id, purge=purge)
            return workspace

    async def refresh_status(self, workspace_id: str) -> Workspace:
        """Reconcile the stored status with what the engine reports.

        Both containers running -> running; both present but not both running
        -> stopped; any container missing -> error.
        """
        async with self._get_workspace_lock(workspace_id):
            workspace = await self._get_active_workspace(workspace_id)

            states: dict[ContainerRole, ContainerState | None] = {}
            for role in ContainerRole:
                try:
                    states[role] = await self._engine.inspect_container(
                        container_ref(self._settings, workspace_id, role)
                    )
                except ContainerNotFoundError:
                    states[role] = None

            missing = [role.value for role, state in states.items() if state is None]
            if missing:
                status, detail = WorkspaceStatus.ERROR, f"containers missing: {', '.join(missing)}"
            elif all(state is not None and state.running for state in states.values()):
                status, detail = WorkspaceStatus.RUNNING, None
            else:
                status, detail = WorkspaceStatus.STOPPED, None

            if status != workspace.status or detail != workspace.error_detail:
                logger.info(
                    "Workspace status reconciled",
                    workspace_id=workspace_id,
                    previous_status=workspace.status.value,
                    status=status.value,
                )
                workspace.transition(status, error_detail=detail)
                await self._store.save_workspace(workspace)
            return workspace

    # Environments

    async def configure_environments(
        self,
        workspace_id: str,
        owner_id: str,
        environment_ids: Sequence[str],
    ) -> SyncResult:
        """Replace the workspace's environment selection, then sync it.

        The whole update is rejected if any id is duplicated or not owned by
        ``owner_id``. The sync itself is best-effort and reported, not raised.
        """
        validate_owner_id(owner_id)
        async with self._get_workspace_lock(workspace_id):
            workspace = await self._get_active_workspace(workspace_id)
            if workspace.owner_id != owner_id:
                raise WorkspaceNotFoundError(workspace_id)

            ids = await self._check_environment_ids(owner_id, environment_ids)
            await self._store.replace_links(workspace_id, ids)
            logger.info(
                "Workspace environments configured",
                workspace_id=workspace_id,
                environment_ids=ids,
            )
            return await self._sync_locked(workspace)

    async def sync_environments(self, workspace_id: str) -> SyncResult:
        """Push the merged variables of the current links into the containers."""
        async with self._get_workspace_lock(workspace_id):
            workspace = await self._get_active_workspace(workspace_id)
            return await self._sync_locked(workspace)

    async def _sync_locked(self, workspace: Workspace) -> SyncResult:
        variables = merge_environments(await self._store.get_linked_environments(workspace.id))

        if workspace.status != WorkspaceStatus.RUNNING:
            return SyncResult(
                workspace_id=workspace.id,
                outcome=SyncOutcome.DEFERRED,
                variables=variables,
                detail=f"Workspace is {workspace.status.value}; variables apply on next start",
            )

        containers: dict[ContainerRole, SyncOutcome] = {}
        details: list[str] = []
        for role in ContainerRole:
            outcome, detail = await self._push_variables(workspace.id, role, variables)
            containers[role] = outcome
            if detail:
                details.append(f"{role.value}: {detail}")

        if SyncOutcome.FAILED in containers.values():
            outcome = SyncOutcome.FAILED
        elif all(o == SyncOutcome.APPLIED for o in containers.values()):
            outcome = SyncOutcome.APPLIED
        else:
            outcome = SyncOutcome.DEFERRED

        logger.info(
            "Workspace environment synced",
            workspace_id=workspace.id,
            outcome=outcome.value,
            variables=len(variables),
        )
        return SyncResult(
            workspace_id=workspace.id,
            outcome=outcome,
            variables=variables,
            containers=containers,
            detail="; ".join(details) or None,
        )

    def _env_file_command(self, variables: dict[str, str]) -> list[str]:
        payload = base64.b64encode(render_env_file(variables).encode()).decode()
        path = shlex.quote(self._settings.env_file_path)
        script = f'mkdir -p "$(dirname {path})" && printf %s {payload} | base64 -d > {path}'
        return ["sh", "-c", script]

    async def _push_variables(
        self, workspace_id: str, role: ContainerRole, variables: dict[str, str]
    ) -> tuple[SyncOutcome, str | None]:
        ref = container_ref(self._settings, workspace_id, role)
        try:
            result = await self._engine.exec(
                ref, self._env_file_command(variables), timeout=self._settings.exec_timeout
            )
        except EngineError as e:
            logger.warning(
                "Environment sync failed",
                workspace_id=workspace_id,
                container=ref.name,
                error=str(e),
            )
            return SyncOutcome.FAILED, str(e)

        if result.exit_code != 0:
            output = result.output().strip()[:200]
            logger.warning(
                "Environment file not written, deferring to next start",
                workspace_id=workspace_id,
                container=ref.name,
                exit_code=result.exit_code,
                output=output,
            )
            return SyncOutcome.DEFERRED, f"exit code {result.exit_code}: {output}"
        return SyncOutcome.APPLIED, None
