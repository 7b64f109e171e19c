"""
meshkube/models/__init__.py

Aggregate imports so the most used models can be accessed directly from this
package.
"""

from meshkube.models.cluster_config import (
    ClusterConfig,
    Metadata,
    ProviderConfig,
    NodeConfig,
    NodePool,
    NetworkConfig,
    WireGuardConfig,
    TailscaleConfig,
    DNSConfig,
    SecurityConfig,
    SSHKeyConfig,
    FirewallConfig,
    FirewallRule,
    KubernetesConfig,
    LoadBalancerConfig,
)
from meshkube.models.nodes import NodeOutput, NetworkOutput, LoadBalancerOutput
from meshkube.models.outputs import ClusterOutputs, DeploymentMetadata

__all__ = [
    "ClusterConfig",
    "Metadata",
    "ProviderConfig",
    "NodeConfig",
    "NodePool",
    "NetworkConfig",
    "WireGuardConfig",
    "TailscaleConfig",
    "DNSConfig",
    "SecurityConfig",
    "SSHKeyConfig",
    "FirewallConfig",
    "FirewallRule",
    "KubernetesConfig",
    "LoadBalancerConfig",
    "NodeOutput",
    "NetworkOutput",
    "LoadBalancerOutput",
    "ClusterOutputs",
    "DeploymentMetadata",
]
