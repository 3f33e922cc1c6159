"""Tests for the container engine client."""

import asyncio
import time
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, NotFound

from agent_ide.engine import ContainerEngineClient, ContainerRef, ContainerSpec
from agent_ide.exceptions import ContainerNotFoundError, EngineError, EngineTimeoutError


def frame(stream: int, payload: bytes) -> bytes:
    return bytes([stream, 0, 0, 0]) + len(payload).to_bytes(4, "big") + payload


@pytest.fixture
def client(mock_docker_client: MagicMock, mock_container: MagicMock) -> ContainerEngineClient:
    mock_docker_client.containers.get.return_value = mock_container
    mock_docker_client.containers.create.return_value = mock_container
    return ContainerEngineClient(mock_docker_client)


class TestContainerOperations:
    """Tests for container CRUD."""

    @pytest.mark.asyncio
    async def test_create_container(self, client: ContainerEngineClient, mock_docker_client: MagicMock) -> None:
        """Test container creation passes the ContainerSpec fields through."""
        spec = ContainerSpec(
            name="agent-ws1",
            image="ghcr.io/sst/opencode:latest",
            environment={"X": "1"},
            labels={"agent-ide.managed": "true"},
            network="agent-ide",
            ports={"4096/tcp": 4000},
        )

        ref = await client.create_container(spec)

        assert ref == ContainerRef(name="agent-ws1", id="abc123def456")
        mock_docker_client.containers.create.assert_called_once_with(
            "ghcr.io/sst/opencode:latest",
            command=None,
            name="agent-ws1",
            environment={"X": "1"},
            labels={"agent-ide.managed": "true"},
            network="agent-ide",
            ports={"4096/tcp": 4000},
        )

    @pytest.mark.asyncio
    async def test_start_stop_remove(self, client: ContainerEngineClient, mock_container: MagicMock) -> None:
        """Test lifecycle calls reach the container."""
        ref = ContainerRef(name="agent-ws1")

        await client.start_container(ref)
        await client.stop_container(ref, timeout=7)
        await client.remove_container(ref)

        mock_container.start.assert_called_once()
        mock_container.stop.assert_called_once_with(timeout=7)
        mock_container.remove.assert_called_once_with(force=True)

    @pytest.mark.asyncio
    async def test_ref_id_preferred_over_name(
        self, client: ContainerEngineClient, mock_docker_client: MagicMock
    ) -> None:
        await client.start_container(ContainerRef(name="agent-ws1", id="abc"))
        mock_docker_client.containers.get.assert_called_with("abc")

    @pytest.mark.asyncio
    async def test_not_found_is_mapped(self, client: ContainerEngineClient, mock_docker_client: MagicMock) -> None:
        """Test docker NotFound becomes ContainerNotFoundError."""
        mock_docker_client.containers.get.side_effect = NotFound("No such container")

        with pytest.raises(ContainerNotFoundError):
            await client.stop_container(ContainerRef(name="agent-ws1"), timeout=1)

    @pytest.mark.asyncio
    async def test_api_error_is_mapped(self, client: ContainerEngineClient, mock_container: MagicMock) -> None:
        """Test other docker errors become EngineError."""
        mock_container.start.side_effect = APIError("port is already allocated")

        with pytest.raises(EngineError) as exc_info:
            await client.start_container(ContainerRef(name="agent-ws1"))
        assert not isinstance(exc_info.value, ContainerNotFoundError)

    @pytest.mark.asyncio
    async def test_connection_error_is_mapped(
        self, client: ContainerEngineClient, mock_docker_client: MagicMock
    ) -> None:
        mock_docker_client.containers.get.side_effect = ConnectionRefusedError()

        with pytest.raises(EngineError):
            await client.inspect_container(ContainerRef(name="agent-ws1"))

    @pytest.mark.asyncio
    async def test_inspect_with_health(self, client: ContainerEngineClient, mock_container: MagicMock) -> None:
        """Test inspect reads status and healthcheck state."""
        mock_container.attrs = {"State": {"Status": "running", "Health": {"Status": "starting"}}}

        state = await client.inspect_container(ContainerRef(name="agent-ws1"))

        assert state.status == "running"
        assert state.health == "starting"
        assert state.running
        assert not state.ready

    @pytest.mark.asyncio
    async def test_list_workspace_containers(
        self, client: ContainerEngineClient, mock_docker_client: MagicMock, mock_container: MagicMock
    ) -> None:
        mock_docker_client.containers.list.return_value = [mock_container]

        states = await client.list_workspace_containers("ws1")

        assert [s.name for s in states] == ["agent-ws1"]
        mock_docker_client.containers.list.assert_called_once_with(
            all=True,
            filters={"label": ["agent-ide.managed=true", "agent-ide.workspace_id=ws1"]},
        )


class TestEnsureNetwork:
    """Tests for network setup."""

    @pytest.mark.asyncio
    async def test_network_exists(self, client: ContainerEngineClient, mock_docker_client: MagicMock) -> None:
        await client.ensure_network("agent-ide")

        mock_docker_client.networks.get.assert_called_once_with("agent-ide")
        mock_docker_client.networks.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_network_created(self, client: ContainerEngineClient, mock_docker_client: MagicMock) -> None:
        mock_docker_client.networks.get.side_effect = NotFound("Not found")

        await client.ensure_network("agent-ide")

        mock_docker_client.networks.create.assert_called_once()
        assert mock_docker_client.networks.create.call_args.args == ("agent-ide",)


class TestExec:
    """Tests for exec over the raw socket."""

    @pytest.fixture
    def sock(self, mock_docker_client: MagicMock) -> MagicMock:
        sock = MagicMock()
        mock_docker_client.api.exec_create.return_value = {"Id": "exec-1"}
        mock_docker_client.api.exec_start.return_value = sock
        mock_docker_client.api.exec_inspect.return_value = {"ExitCode": 0}
        return sock

    @pytest.mark.asyncio
    async def test_collects_raw_stream(
        self, client: ContainerEngineClient, mock_docker_client: MagicMock, sock: MagicMock
    ) -> None:
        """Test the multiplexed stream is returned undecoded."""
        raw = frame(1, b"ses_ab12\n") + frame(2, b"warning\n")

        with patch("agent_ide.engine.client.socket_read", side_effect=[raw[:5], raw[5:], b""]):
            result = await client.exec(ContainerRef(name="agent-ws1"), ["echo", "hi"], timeout=5)

        assert result.raw == raw
        assert result.exit_code == 0
        assert result.stdout() == "ses_ab12\n"
        assert result.output() == "ses_ab12\nwarning\n"
        mock_docker_client.api.exec_create.assert_called_once_with(
            "agent-ws1", cmd=["echo", "hi"], stdout=True, stderr=True, stdin=False, tty=False
        )
        mock_docker_client.api.exec_start.assert_called_once_with("exec-1", socket=True)
        sock.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_non_zero_exit(
        self, client: ContainerEngineClient, mock_docker_client: MagicMock, sock: MagicMock
    ) -> None:
        mock_docker_client.api.exec_inspect.return_value = {"ExitCode": 127}

        with patch("agent_ide.engine.client.socket_read", return_value=b""):
            result = await client.exec(ContainerRef(name="agent-ws1"), ["nope"], timeout=5)

        assert result.exit_code == 127
        assert result.stdout() == ""

    @pytest.mark.asyncio
    async def test_timeout_closes_socket(self, client: ContainerEngineClient, sock: MagicMock) -> None:
        """Test a hanging exec raises EngineTimeoutError and releases the socket."""

        def slow_read(_sock: object, _n: int) -> bytes:
            time.sleep(0.3)
            return b""

        with patch("agent_ide.engine.client.socket_read", side_effect=slow_read):
            with pytest.raises(EngineTimeoutError):
                await client.exec(ContainerRef(name="agent-ws1"), ["sleep", "60"], timeout=0.05)

        sock.close.assert_called()

    @pytest.mark.asyncio
    async def test_timeout_during_exec_start_closes_late_socket(
        self, client: ContainerEngineClient, mock_docker_client: MagicMock, sock: MagicMock
    ) -> None:
        """Test a socket handed back after the timeout fired is still closed and never read."""

        def slow_start(_exec_id: str, socket: bool) -> MagicMock:
            time.sleep(0.3)
            return sock

        mock_docker_client.api.exec_start.side_effect = slow_start

        with patch("agent_ide.engine.client.socket_read") as read:
            with pytest.raises(EngineTimeoutError):
                await client.exec(ContainerRef(name="agent-ws1"), ["sleep", "60"], timeout=0.05)
            sock.close.assert_not_called()

            await asyncio.sleep(0.5)

        sock.close.assert_called_once()
        read.assert_not_called()
        mock_docker_client.api.exec_inspect.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_container(self, client: ContainerEngineClient, mock_docker_client: MagicMock) -> None:
        mock_docker_client.api.exec_create.side_effect = NotFound("No such container")

        with pytest.raises(ContainerNotFoundError):
            await client.exec(ContainerRef(name="agent-ws1"), ["true"], timeout=5)


class TestConnection:
    """Tests for ping and close."""

    @pytest.mark.asyncio
    async def test_ping(self, client: ContainerEngineClient) -> None:
        assert await client.ping() is True

    @pytest.mark.asyncio
    async def test_close(self, client: ContainerEngineClient, mock_docker_client: MagicMock) -> None:
        await client.close()
        mock_docker_client.close.assert_called_once()
