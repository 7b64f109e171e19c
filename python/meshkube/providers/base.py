"""
meshkube/providers/base.py

The contract every cloud backend implements. The orchestrator only ever talks
to providers through this interface, looked up by name in the ProviderRegistry.

All resource operations are coroutines; the three getters are plain methods.
Errors raised by an adapter are opaque to the orchestrator, which either
propagates them unchanged or wraps them with the name of the entity being
deployed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from meshkube.context import DeployContext
from meshkube.models.cluster_config import (
    ClusterConfig,
    FirewallConfig,
    LoadBalancerConfig,
    NetworkConfig,
    NodeConfig,
    NodePool,
)
from meshkube.models.nodes import LoadBalancerOutput, NetworkOutput, NodeOutput


class ProviderAdapter(ABC):
    """Abstract base class for a cloud provider backend."""

    @abstractmethod
    async def initialize(self, ctx: DeployContext, cluster_config: ClusterConfig) -> None:
        """Validate credentials and prepare the backend for resource creation."""

    @abstractmethod
    async def create_node(self, ctx: DeployContext, node: NodeConfig) -> NodeOutput:
        """Create one node and return it with its `role` label set."""

    @abstractmethod
    async def create_node_pool(
        self, ctx: DeployContext, pool: NodePool
    ) -> List[NodeOutput]:
        """Create `pool.count` nodes; returns them in a stable order."""

    @abstractmethod
    async def create_network(
        self, ctx: DeployContext, network: NetworkConfig
    ) -> NetworkOutput:
        ...

    @abstractmethod
    async def create_firewall(
        self, ctx: DeployContext, firewall: FirewallConfig, node_ids: List[str]
    ) -> None:
        ...

    @abstractmethod
    async def create_load_balancer(
        self, ctx: DeployContext, lb: LoadBalancerConfig
    ) -> LoadBalancerOutput:
        ...

    @abstractmethod
    async def cleanup(self, ctx: DeployContext) -> None:
        """Tear down every resource this adapter created."""

    @abstractmethod
    def get_name(self) -> str:
        ...

    @abstractmethod
    def get_regions(self) -> List[str]:
        ...

    @abstractmethod
    def get_sizes(self) -> List[str]:
        ...
