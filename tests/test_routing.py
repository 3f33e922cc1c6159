"""Tests for routing descriptors and Traefik labels."""

import pytest

from agent_ide.models import ContainerRole
from agent_ide.routing import build_routing_descriptor
from agent_ide.validation import ValidationError


class TestBuildRoutingDescriptor:
    """Tests for host derivation."""

    def test_hosts(self) -> None:
        routing = build_routing_descriptor("abc", "lvh.me", 4096, 8080)

        assert routing.agent.host == "agent-abc.lvh.me"
        assert routing.editor.host == "editor-abc.lvh.me"
        assert routing.agent.rule == "Host(`agent-abc.lvh.me`)"
        assert routing.agent.port == 4096
        assert routing.editor.port == 8080
        assert routing.agent.enabled is True

    def test_distinct_ids_give_distinct_hosts(self) -> None:
        first = build_routing_descriptor("abc", "lvh.me", 4096, 8080)
        second = build_routing_descriptor("abd", "lvh.me", 4096, 8080)

        hosts = {r.host for r in first.rules} | {r.host for r in second.rules}
        assert len(hosts) == 4

    def test_domain_is_lowercased(self) -> None:
        routing = build_routing_descriptor("abc", "IDE.Example.com", 1, 2)
        assert routing.domain == "ide.example.com"
        assert routing.agent.host == "agent-abc.ide.example.com"

    def test_custom_prefixes(self) -> None:
        routing = build_routing_descriptor("abc", "lvh.me", 1, 2, agent_prefix="opencode", editor_prefix="vscode")
        assert routing.agent.host == "opencode-abc.lvh.me"
        assert routing.editor.host == "vscode-abc.lvh.me"

    @pytest.mark.parametrize("workspace_id", ["", "a_b", "a.b", "-abc", "abc-", "a b", "x" * 60])
    def test_rejects_unroutable_ids(self, workspace_id: str) -> None:
        with pytest.raises(ValidationError):
            build_routing_descriptor(workspace_id, "lvh.me", 1, 2)

    def test_ids_differing_only_in_case_cannot_share_a_host(self) -> None:
        routing = build_routing_descriptor("work1", "lvh.me", 1, 2)
        assert routing.agent.host == "agent-work1.lvh.me"

        with pytest.raises(ValidationError):
            build_routing_descriptor("Work1", "lvh.me", 1, 2)

    def test_prefix_case_is_normalized(self) -> None:
        routing = build_routing_descriptor("abc", "lvh.me", 1, 2, agent_prefix="Agent", editor_prefix="Editor")
        assert routing.agent.host == "agent-abc.lvh.me"
        assert routing.editor.router_name == "editor-abc"

    def test_rejects_prefixes_differing_only_in_case(self) -> None:
        with pytest.raises(ValidationError):
            build_routing_descriptor("abc", "lvh.me", 1, 2, agent_prefix="ide", editor_prefix="IDE")

    @pytest.mark.parametrize("domain", ["", "lvh..me", "-lvh.me", "lvh.me/x"])
    def test_rejects_invalid_domains(self, domain: str) -> None:
        with pytest.raises(ValidationError):
            build_routing_descriptor("abc", domain, 1, 2)

    def test_rejects_equal_prefixes(self) -> None:
        with pytest.raises(ValidationError):
            build_routing_descriptor("abc", "lvh.me", 1, 2, agent_prefix="ide", editor_prefix="ide")

    def test_rejects_hyphenated_prefix(self) -> None:
        with pytest.raises(ValidationError):
            build_routing_descriptor("abc", "lvh.me", 1, 2, agent_prefix="my-agent")

    def test_urls(self) -> None:
        routing = build_routing_descriptor("abc", "lvh.me", 1, 2)
        assert routing.urls("https") == {
            ContainerRole.AGENT: "https://agent-abc.lvh.me/",
            ContainerRole.EDITOR: "https://editor-abc.lvh.me/",
        }


class TestLabelsFor:
    """Tests for Traefik docker-provider labels."""

    def test_minimal_labels(self) -> None:
        routing = build_routing_descriptor("abc", "lvh.me", 4096, 8080)

        labels = routing.labels_for(ContainerRole.AGENT)

        assert labels == {
            "traefik.enable": "true",
            "traefik.http.routers.agent-abc.rule": "Host(`agent-abc.lvh.me`)",
            "traefik.http.routers.agent-abc.service": "agent-abc",
            "traefik.http.services.agent-abc.loadbalancer.server.port": "4096",
        }

    def test_full_labels(self) -> None:
        routing = build_routing_descriptor("abc", "lvh.me", 4096, 8080)

        labels = routing.labels_for(
            ContainerRole.EDITOR,
            network="agent-ide",
            entrypoints=["web", "websecure"],
            cert_resolver="letsencrypt",
        )

        assert labels["traefik.http.routers.editor-abc.entrypoints"] == "web,websecure"
        assert labels["traefik.http.routers.editor-abc.tls"] == "true"
        assert labels["traefik.http.routers.editor-abc.tls.certresolver"] == "letsencrypt"
        assert labels["traefik.http.services.editor-abc.loadbalancer.server.port"] == "8080"
        assert labels["traefik.docker.network"] == "agent-ide"
