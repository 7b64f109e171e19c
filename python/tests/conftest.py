from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional

import pytest

from meshkube.context import DeployContext
from meshkube.models.cluster_config import (
    ClusterConfig,
    FirewallConfig,
    LoadBalancerConfig,
    Metadata,
    NetworkConfig,
    NodeConfig,
    NodePool,
    ProviderConfig,
)
from meshkube.models.nodes import (
    ROLE_LABEL,
    LoadBalancerOutput,
    NetworkOutput,
    NodeOutput,
    primary_role,
)
from meshkube.orchestrator import ClusterOrchestrator
from meshkube.providers.base import ProviderAdapter
from meshkube.settings import MeshkubeSettings


# =============================================================================
# Fake provider adapter
# =============================================================================


class FakeProvider(ProviderAdapter):
    """
    In-memory adapter. Every call is recorded in `calls`; any operation can be
    made to fail by putting an exception in `errors` under the operation name.
    """

    def __init__(self, name: str = "fake", regions: Optional[List[str]] = None) -> None:
        self.name = name
        self.regions = regions or ["region-1"]
        self.calls: List[str] = []
        self.errors: Dict[str, Exception] = {}
        self.cleanup_calls = 0
        self.create_node_func: Optional[Callable[[NodeConfig], NodeOutput]] = None
        self.firewall_node_ids: List[str] = []
        self._counter = 0

    def _maybe_fail(self, op: str) -> None:
        self.calls.append(op)
        if op in self.errors:
            raise self.errors[op]

    def _next_ip(self) -> str:
        self._counter += 1
        return f"203.0.113.{self._counter}"

    async def initialize(self, ctx: DeployContext, cluster_config: ClusterConfig) -> None:
        self._maybe_fail("initialize")

    async def create_node(self, ctx: DeployContext, node: NodeConfig) -> NodeOutput:
        self._maybe_fail("create_node")
        if self.create_node_func is not None:
            return self.create_node_func(node)
        # Yield so concurrent callers interleave.
        await asyncio.sleep(0)
        labels = dict(node.labels)
        role = primary_role(node.roles)
        if role:
            labels[ROLE_LABEL] = role
        return NodeOutput(
            name=node.name,
            provider=self.name,
            region=node.region or self.regions[0],
            size=node.size or "small",
            public_ip=self._next_ip(),
            private_ip=f"10.0.0.{self._counter}",
            labels=labels,
            id=f"{self.name}-{node.name}",
        )

    async def create_node_pool(self, ctx: DeployContext, pool: NodePool) -> List[NodeOutput]:
        self._maybe_fail("create_node_pool")
        role = primary_role(pool.roles)
        outputs = []
        for i in range(pool.count):
            labels = {"pool": pool.name, **pool.labels}
            if role:
                labels[ROLE_LABEL] = role
            outputs.append(
                NodeOutput(
                    name=f"{pool.name}-{i + 1}",
                    provider=self.name,
                    region=pool.region or self.regions[0],
                    size=pool.size or "small",
                    public_ip=self._next_ip(),
                    private_ip=f"10.0.1.{self._counter}",
                    labels=labels,
                    id=f"{self.name}-{pool.name}-{i + 1}",
                )
            )
        return outputs

    async def create_network(self, ctx: DeployContext, network: NetworkConfig) -> NetworkOutput:
        self._maybe_fail("create_network")
        return NetworkOutput(provider=self.name, id=f"{self.name}-net", cidr=network.cidr)

    async def create_firewall(
        self, ctx: DeployContext, firewall: FirewallConfig, node_ids: List[str]
    ) -> None:
        self._maybe_fail("create_firewall")
        self.firewall_node_ids = list(node_ids)

    async def create_load_balancer(
        self, ctx: DeployContext, lb: LoadBalancerConfig
    ) -> LoadBalancerOutput:
        self._maybe_fail("create_load_balancer")
        return LoadBalancerOutput(
            name=lb.name, provider=self.name, id=f"{self.name}-lb", ip="198.51.100.10"
        )

    async def cleanup(self, ctx: DeployContext) -> None:
        self.cleanup_calls += 1
        self._maybe_fail("cleanup")

    def get_name(self) -> str:
        return self.name

    def get_regions(self) -> List[str]:
        return list(self.regions)

    def get_sizes(self) -> List[str]:
        return ["small", "large"]


def make_node(
    name: str, provider: str = "aws", role: Optional[str] = None, **kwargs
) -> NodeOutput:
    labels = {ROLE_LABEL: role} if role else None
    return NodeOutput(name=name, provider=provider, labels=labels, **kwargs)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings() -> MeshkubeSettings:
    return MeshkubeSettings(command_retries=1, command_retry_delay=0.0, ssh_connect_retries=1)


@pytest.fixture
def ctx() -> DeployContext:
    return DeployContext(project="demo", stack="test")


@pytest.fixture
def cluster_config() -> ClusterConfig:
    return ClusterConfig(
        metadata=Metadata(name="demo", environment="staging", version="2.0.0"),
        providers={
            "aws": ProviderConfig(enabled=True, region="us-east-1"),
            "digitalocean": ProviderConfig(enabled=True, region="nyc3"),
            "gcp": ProviderConfig(enabled=False),
        },
        node_pools={
            "masters": NodePool(provider="aws", count=1, size="small", roles=["master"]),
            "workers": NodePool(provider="digitalocean", count=2, size="small", roles=["worker"]),
        },
    )


@pytest.fixture
def fake_providers() -> Dict[str, FakeProvider]:
    return {}


@pytest.fixture
def orchestrator(ctx, cluster_config, settings, fake_providers) -> ClusterOrchestrator:
    def factory(name: str) -> FakeProvider:
        adapter = fake_providers.setdefault(name, FakeProvider(name))
        return adapter

    return ClusterOrchestrator(ctx, cluster_config, settings=settings, adapter_factory=factory)
