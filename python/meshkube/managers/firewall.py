"""
meshkube/managers/firewall.py

Applies cluster firewalls through each provider. Without an explicit firewall
config, a rule set covering SSH, the Kubernetes API, RKE2's supervisor port,
kubelet, etcd, NodePorts, HTTP(S) and the WireGuard port is used.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Dict, List, Optional

from meshkube.context import DeployContext
from meshkube.errors import DeploymentError, ValidationFailedError
from meshkube.models.cluster_config import FirewallConfig, FirewallRule
from meshkube.models.nodes import NodeOutput
from meshkube.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def default_firewall(cluster_cidr: str, wireguard_port: int = 51820) -> FirewallConfig:
    internal = [cluster_cidr]
    return FirewallConfig(
        inbound_rules=[
            FirewallRule(port="22", description="SSH"),
            FirewallRule(port="6443", description="Kubernetes API"),
            FirewallRule(port="80", description="HTTP"),
            FirewallRule(port="443", description="HTTPS"),
            FirewallRule(port="9345", source=internal, description="RKE2 supervisor"),
            FirewallRule(port="10250", source=internal, description="kubelet"),
            FirewallRule(port="2379-2380", source=internal, description="etcd"),
            FirewallRule(port="30000-32767", description="NodePort services"),
            FirewallRule(protocol="udp", port=str(wireguard_port), description="WireGuard"),
        ],
        outbound_rules=[
            FirewallRule(port="1-65535", description="all TCP egress"),
            FirewallRule(protocol="udp", port="1-65535", description="all UDP egress"),
        ],
    )


def _port_ok(spec: str) -> bool:
    parts = spec.split("-")
    if len(parts) > 2 or not all(p.isdigit() for p in parts):
        return False
    nums = [int(p) for p in parts]
    return all(1 <= n <= 65535 for n in nums) and nums == sorted(nums)


def validate_firewall_config(cfg: FirewallConfig) -> None:
    problems: List[str] = []
    for rule in cfg.inbound_rules + cfg.outbound_rules:
        if rule.protocol != "icmp" and not _port_ok(rule.port):
            problems.append(f"invalid port {rule.port!r}")
        for source in rule.source:
            try:
                ipaddress.ip_network(source, strict=False)
            except ValueError:
                problems.append(f"invalid source {source!r}")
    if problems:
        raise ValidationFailedError("Firewall", "; ".join(problems))


class FirewallManager:
    def __init__(
        self,
        registry: ProviderRegistry,
        config: Optional[FirewallConfig],
        cluster_cidr: str,
        wireguard_port: int = 51820,
    ) -> None:
        self.registry = registry
        self.config = config or default_firewall(cluster_cidr, wireguard_port)
        self.applied: Dict[str, List[str]] = {}

    async def apply(
        self, ctx: DeployContext, nodes_by_provider: Dict[str, List[NodeOutput]]
    ) -> Dict[str, List[str]]:
        """Create the firewall for each provider that has nodes."""
        validate_firewall_config(self.config)
        for name, nodes in nodes_by_provider.items():
            if not nodes:
                continue
            adapter, found = self.registry.get(name)
            if not found or adapter is None:
                logger.warning("Skipping firewall for %s: provider not registered", name)
                continue
            node_ids = [n.id or n.name for n in nodes]
            try:
                await adapter.create_firewall(ctx, self.config, node_ids)
            except Exception as exc:
                raise DeploymentError(
                    f"failed to create firewall for provider {name}: {exc}", name
                ) from exc
            self.applied[name] = node_ids
            logger.info("Firewall %s applied to %d %s nodes", self.config.name, len(node_ids), name)
        return dict(self.applied)
