"""
meshkube/validation.py

Whole-document checks on a ClusterConfig that pydantic field validation alone
cannot express (cross references between sections).
"""

from __future__ import annotations

import logging
from typing import List

from meshkube.errors import ValidationFailedError
from meshkube.models.cluster_config import ClusterConfig
from meshkube.models.nodes import has_master_role
from meshkube.vpn.selector import tailscale_problems, wireguard_problems

logger = logging.getLogger(__name__)


class ConfigValidator:
    """
    Collects every problem in a cluster document and reports them together.

    Both VPNs being enabled is only a warning: Tailscale takes precedence and
    WireGuard is ignored.
    """

    def validate_metadata(self, config: ClusterConfig) -> List[str]:
        if not config.metadata.name.strip():
            return ["cluster name is required"]
        return []

    def validate_providers(self, config: ClusterConfig) -> List[str]:
        enabled = set(config.enabled_providers())
        if not enabled:
            return ["at least one provider must be enabled"]
        problems = []
        for node in config.nodes:
            if node.provider not in enabled:
                problems.append(f"node {node.name} uses provider {node.provider} which is not enabled")
        for name, pool in config.node_pools.items():
            if pool.provider not in enabled:
                problems.append(f"node pool {name} uses provider {pool.provider} which is not enabled")
        lb = config.load_balancer
        if lb is not None and lb.provider not in enabled:
            problems.append(f"load balancer uses provider {lb.provider} which is not enabled")
        return problems

    def validate_nodes(self, config: ClusterConfig) -> List[str]:
        problems = []
        names = [n.name for n in config.nodes]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            problems.append(f"duplicate node names: {', '.join(duplicates)}")
        declared = [n.roles for n in config.nodes] + [
            p.roles for p in config.node_pools.values() if p.count > 0
        ]
        if declared and not any(has_master_role(roles) for roles in declared):
            problems.append("at least one master or controlplane node is required")
        return problems

    def validate_network(self, config: ClusterConfig) -> List[str]:
        net = config.network
        wg_on = net.wireguard is not None and net.wireguard.enabled
        ts_on = net.tailscale is not None and net.tailscale.enabled
        problems: List[str] = []
        if wg_on and ts_on:
            logger.warning("Both WireGuard and Tailscale are enabled; Tailscale will be used")
        if ts_on:
            problems += tailscale_problems(net.tailscale)  # type: ignore[arg-type]
        elif wg_on:
            problems += wireguard_problems(net.wireguard)  # type: ignore[arg-type]
        if net.dns.domain and not net.dns.provider:
            problems.append("DNS provider is required when a domain is set")
        if config.kubernetes.distribution != "rke2":
            problems.append(f"unsupported Kubernetes distribution {config.kubernetes.distribution!r}")
        return problems

    def problems(self, config: ClusterConfig) -> List[str]:
        return (
            self.validate_metadata(config)
            + self.validate_providers(config)
            + self.validate_nodes(config)
            + self.validate_network(config)
        )

    def validate(self, config: ClusterConfig) -> None:
        """
        Raises:
            ValidationFailedError: listing every problem found.
        """
        problems = self.problems(config)
        if problems:
            raise ValidationFailedError("Cluster config", "; ".join(problems))
