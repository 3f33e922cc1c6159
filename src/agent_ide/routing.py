"""Routing labels for subdomain-based workspace access.

Traefik's docker provider discovers routes from container labels. Every
workspace gets two virtual hosts, one per container role:

    <agent_prefix>-<workspace_id>.<domain>   -> agent container
    <editor_prefix>-<workspace_id>.<domain>  -> editor container

Everything here is pure; nothing talks to the network.
"""

from __future__ import annotations

from dataclasses import dataclass

from agent_ide.models.workspace import ContainerRole
from agent_ide.validation import (
    ValidationError,
    validate_domain,
    validate_host_label,
    validate_workspace_id,
)


@dataclass(frozen=True)
class VirtualHostRule:
    """One proxy route: host match -> internal container port."""

    role: ContainerRole
    host: str
    port: int
    router_name: str
    enabled: bool = True

    @property
    def rule(self) -> str:
        return f"Host(`{self.host}`)"


@dataclass(frozen=True)
class RoutingDescriptor:
    """Both virtual hosts of a workspace."""

    workspace_id: str
    domain: str
    agent: VirtualHostRule
    editor: VirtualHostRule

    @property
    def rules(self) -> tuple[VirtualHostRule, VirtualHostRule]:
        return (self.agent, self.editor)

    def rule_for(self, role: ContainerRole) -> VirtualHostRule:
        return self.agent if role == ContainerRole.AGENT else self.editor

    def urls(self, scheme: str = "http") -> dict[ContainerRole, str]:
        """Browser URLs of both containers."""
        return {rule.role: f"{scheme}://{rule.host}/" for rule in self.rules}

    def labels_for(
        self,
        role: ContainerRole,
        network: str | None = None,
        entrypoints: list[str] | None = None,
        cert_resolver: str | None = None,
    ) -> dict[str, str]:
        """Traefik docker-provider labels for the container playing ``role``."""
        rule = self.rule_for(role)
        router = f"traefik.http.routers.{rule.router_name}"
        service = f"traefik.http.services.{rule.router_name}"

        labels = {
            "traefik.enable": "true" if rule.enabled else "false",
            f"{router}.rule": rule.rule,
            f"{router}.service": rule.router_name,
            f"{service}.loadbalancer.server.port": str(rule.port),
        }
        if entrypoints:
            labels[f"{router}.entrypoints"] = ",".join(entrypoints)
        if cert_resolver:
            labels[f"{router}.tls"] = "true"
            labels[f"{router}.tls.certresolver"] = cert_resolver
        if network:
            labels["traefik.docker.network"] = network
        return labels


def build_routing_descriptor(
    workspace_id: str,
    domain: str,
    agent_port: int,
    editor_port: int,
    agent_prefix: str = "agent",
    editor_prefix: str = "editor",
) -> RoutingDescriptor:
    """Derive the routing descriptor of a workspace.

    Uniquely determined by (workspace_id, domain): prefixes are distinct
    hyphen-free labels and the id cannot contain a dot, so two ids never
    yield the same host.

    Raises:
        ValidationError: If the id, domain or prefixes are unusable in a hostname
    """
    validate_workspace_id(workspace_id)
    domain = validate_domain(domain)
    for prefix in (agent_prefix, editor_prefix):
        if not prefix.isalnum():
            raise ValidationError(f"Invalid host prefix: {prefix!r}")
    if agent_prefix.lower() == editor_prefix.lower():
        raise ValidationError("Agent and editor host prefixes must differ")

    def _rule(role: ContainerRole, prefix: str, port: int) -> VirtualHostRule:
        name = validate_host_label(f"{prefix.lower()}-{workspace_id}", "host")
        return VirtualHostRule(role=role, host=f"{name}.{domain}", port=port, router_name=name)

    return RoutingDescriptor(
        workspace_id=workspace_id,
        domain=domain,
        agent=_rule(ContainerRole.AGENT, agent_prefix, agent_port),
        editor=_rule(ContainerRole.EDITOR, editor_prefix, editor_port),
    )
