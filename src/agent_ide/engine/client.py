"""Thin async wrapper over the Docker engine.

Every blocking SDK call runs in a worker thread. Docker errors are mapped to
the orchestrator's EngineError family; nothing here interprets exec output.
The client is constructed explicitly and passed to whoever needs it.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import docker
import structlog
from docker.errors import APIError, DockerException, NotFound
from docker.utils.socket import read as socket_read

from agent_ide.engine.stream import STDERR, STDOUT, demultiplex
from agent_ide.exceptions import ContainerNotFoundError, EngineError, EngineTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable

    from agent_ide.config import Settings

logger = structlog.get_logger()

# Labels marking managed containers
LABEL_MANAGED = "agent-ide.managed"
LABEL_WORKSPACE_ID = "agent-ide.workspace_id"
LABEL_OWNER_ID = "agent-ide.owner_id"
LABEL_ROLE = "agent-ide.role"

READ_CHUNK_SIZE = 4096


@dataclass(frozen=True)
class ContainerRef:
    """Handle to a container. The name is deterministic; the id may be unknown."""

    name: str
    id: str | None = None

    @property
    def key(self) -> str:
        return self.id or self.name


@dataclass
class ContainerSpec:
    """What to create."""

    name: str
    image: str
    environment: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    network: str | None = None
    ports: dict[str, int] | None = None
    command: list[str] | None = None


@dataclass(frozen=True)
class ContainerState:
    """Observed state of a container."""

    name: str
    id: str
    status: str
    health: str | None = None
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def running(self) -> bool:
        return self.status == "running"

    @property
    def ready(self) -> bool:
        return self.running and self.health in (None, "healthy")


@dataclass(frozen=True)
class ExecResult:
    """Exit code plus the raw multiplexed output of an exec."""

    exit_code: int | None
    raw: bytes

    def stdout(self) -> str:
        return demultiplex(self.raw, streams=(STDOUT,))

    def output(self) -> str:
        """stdout and stderr, interleaved in frame order."""
        return demultiplex(self.raw, streams=(STDOUT, STDERR))


def _drain_socket(sock: Any) -> bytes:
    chunks: list[bytes] = []
    while True:
        chunk = socket_read(sock, READ_CHUNK_SIZE)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def _close_socket(sock: Any) -> None:
    """Close an attached exec socket, waking any thread blocked reading it."""
    inner = getattr(sock, "_sock", None)
    if isinstance(inner, socket.socket):
        with contextlib.suppress(OSError):
            inner.shutdown(socket.SHUT_RDWR)
    with contextlib.suppress(OSError):
        sock.close()


class _AttachedSocket:
    """Exec socket shared between the worker thread and the awaiting task.

    Closing may happen before ``exec_start`` returns; the socket handed over
    afterwards is then closed by the worker instead of being read.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sock: Any = None
        self._closed = False

    def attach(self, sock: Any) -> bool:
        with self._lock:
            if not self._closed:
                self._sock = sock
                return True
        _close_socket(sock)
        return False

    def close(self) -> None:
        with self._lock:
            self._closed = True
            sock, self._sock = self._sock, None
        if sock is not None:
            _close_socket(sock)


def _start_and_drain(api: Any, exec_id: str, attached: _AttachedSocket) -> bytes:
    # socket=True hands back the raw multiplexed stream instead of letting
    # the SDK demux it
    sock = api.exec_start(exec_id, socket=True)
    if not attached.attach(sock):
        return b""
    return _drain_socket(sock)


def _state_from_container(container: Any) -> ContainerState:
    state = (container.attrs or {}).get("State") or {}
    health = (state.get("Health") or {}).get("Status")
    return ContainerState(
        name=container.name or "",
        id=container.id or "",
        status=container.status,
        health=health,
        labels=dict(container.labels or {}),
    )


class ContainerEngineClient:
    """Async capability over a Docker engine connection."""

    def __init__(self, docker_client: docker.DockerClient) -> None:
        self._docker = docker_client

    @classmethod
    def from_settings(cls, settings: Settings) -> ContainerEngineClient:
        """Connect to the engine configured in ``settings``."""
        try:
            client = docker.DockerClient(
                base_url=settings.docker_host,
                timeout=settings.docker_api_timeout,
            )
        except DockerException as e:
            raise EngineError(f"Cannot connect to container engine: {e}") from e
        logger.info("Container engine client created", docker_host=settings.docker_host)
        return cls(client)

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking SDK call in a thread and map its errors."""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except NotFound as e:
            raise ContainerNotFoundError(str(e)) from e
        except (APIError, DockerException, OSError) as e:
            raise EngineError(str(e)) from e

    async def ping(self) -> bool:
        return bool(await self._call(self._docker.ping))

    async def close(self) -> None:
        await asyncio.to_thread(self._docker.close)

    async def ensure_network(self, name: str) -> None:
        """Create the bridge network if it does not exist yet."""
        try:
            await self._call(self._docker.networks.get, name)
            logger.debug("Docker network exists", network=name)
        except ContainerNotFoundError:
            logger.info("Creating Docker network", network=name)
            await self._call(
                self._docker.networks.create,
                name,
                driver="bridge",
                labels={LABEL_MANAGED: "true"},
            )

    async def create_container(self, spec: ContainerSpec) -> ContainerRef:
        """Create (but do not start) a container."""
        container = await self._call(
            self._docker.containers.create,
            spec.image,
            command=spec.command,
            name=spec.name,
            environment=spec.environment,
            labels=spec.labels,
            network=spec.network,
            ports=spec.ports,
        )
        logger.debug("Container created", name=spec.name, container_id=(container.id or "")[:12])
        return ContainerRef(name=spec.name, id=container.id)

    async def start_container(self, ref: ContainerRef) -> None:
        container = await self._call(self._docker.containers.get, ref.key)
        await self._call(container.start)

    async def stop_container(self, ref: ContainerRef, timeout: int) -> None:
        """Stop with a grace period; the engine kills the process after ``timeout``."""
        container = await self._call(self._docker.containers.get, ref.key)
        await self._call(container.stop, timeout=timeout)

    async def remove_container(self, ref: ContainerRef, force: bool = True) -> None:
        container = await self._call(self._docker.containers.get, ref.key)
        await self._call(container.remove, force=force)

    async def inspect_container(self, ref: ContainerRef) -> ContainerState:
        container = await self._call(self._docker.containers.get, ref.key)
        return _state_from_container(container)

    async def list_workspace_containers(self, workspace_id: str | None = None) -> list[ContainerState]:
        """List managed containers, optionally those of one workspace."""
        label_filter = [f"{LABEL_MANAGED}=true"]
        if workspace_id:
            label_filter.append(f"{LABEL_WORKSPACE_ID}={workspace_id}")
        containers = await self._call(
            self._docker.containers.list,
            all=True,
            filters={"label": label_filter},
        )
        return [_state_from_container(c) for c in containers]

    async def exec(self, ref: ContainerRef, command: list[str], timeout: float) -> ExecResult:
        """Run ``command`` in the container and collect its raw output stream.

        Raises:
            EngineTimeoutError: If the command does not finish within ``timeout``
            ContainerNotFoundError: If the container does not exist
            EngineError: For any other engine failure
        """
        attached = _AttachedSocket()
        try:
            return await asyncio.wait_for(
                self._exec_attached(ref, command, attached),
                timeout=timeout,
            )
        except TimeoutError as e:
            logger.warning(
                "Exec timed out",
                container=ref.name,
                command=" ".join(command)[:100],
                timeout=timeout,
            )
            raise EngineTimeoutError(f"Exec in {ref.name} timed out after {timeout}s") from e
        finally:
            attached.close()

    async def _exec_attached(
        self,
        ref: ContainerRef,
        command: list[str],
        attached: _AttachedSocket,
    ) -> ExecResult:
        api = self._docker.api
        exec_instance = await self._call(
            api.exec_create,
            ref.key,
            cmd=command,
            stdout=True,
            stderr=True,
            stdin=False,
            tty=False,
        )
        exec_id = exec_instance["Id"]
        raw = await self._call(_start_and_drain, api, exec_id, attached)

        info = await self._call(api.exec_inspect, exec_id)
        return ExecResult(exit_code=info.get("ExitCode"), raw=raw)
