from __future__ import annotations

import pytest

from meshkube.errors import ValidationFailedError
from meshkube.models.cluster_config import (
    ClusterConfig,
    DNSConfig,
    KubernetesConfig,
    LoadBalancerConfig,
    Metadata,
    NetworkConfig,
    NodeConfig,
    NodePool,
    ProviderConfig,
    TailscaleConfig,
    WireGuardConfig,
)
from meshkube.validation import ConfigValidator


@pytest.fixture
def valid_config() -> ClusterConfig:
    return ClusterConfig(
        metadata=Metadata(name="demo"),
        providers={"aws": ProviderConfig(enabled=True)},
        nodes=[NodeConfig(name="cp-1", provider="aws", roles=["master"])],
        node_pools={"workers": NodePool(provider="aws", count=2, roles=["worker"])},
    )


class TestConfigValidator:
    def test_valid(self, valid_config):
        ConfigValidator().validate(valid_config)

    def test_collects_every_problem(self, valid_config):
        valid_config.metadata.name = ""
        valid_config.nodes.append(NodeConfig(name="cp-1", provider="gcp", roles=["worker"]))
        valid_config.load_balancer = LoadBalancerConfig(provider="azure")

        problems = ConfigValidator().problems(valid_config)

        assert "cluster name is required" in problems
        assert "node cp-1 uses provider gcp which is not enabled" in problems
        assert "load balancer uses provider azure which is not enabled" in problems
        assert "duplicate node names: cp-1" in problems

    def test_no_enabled_provider(self):
        config = ClusterConfig(metadata=Metadata(name="demo"))
        with pytest.raises(ValidationFailedError, match="at least one provider must be enabled"):
            ConfigValidator().validate(config)

    def test_requires_a_master(self, valid_config):
        valid_config.nodes = []
        with pytest.raises(ValidationFailedError, match="master or controlplane"):
            ConfigValidator().validate(valid_config)

    def test_empty_pools_do_not_count(self, valid_config):
        valid_config.nodes = []
        valid_config.node_pools["cp"] = NodePool(provider="aws", count=0, roles=["master"])
        assert "at least one master or controlplane node is required" in ConfigValidator().problems(
            valid_config
        )

    def test_both_vpns_only_validates_tailscale(self, valid_config):
        valid_config.network = NetworkConfig(
            wireguard=WireGuardConfig(enabled=True),
            tailscale=TailscaleConfig(
                enabled=True, headscale_url="https://hs.example.com", auth_key="k"
            ),
        )
        ConfigValidator().validate(valid_config)

    def test_selected_vpn_problems_reported(self, valid_config):
        valid_config.network = NetworkConfig(wireguard=WireGuardConfig(enabled=True))
        with pytest.raises(ValidationFailedError, match="server endpoint is required"):
            ConfigValidator().validate(valid_config)

    def test_dns_and_distribution(self, valid_config):
        valid_config.network = NetworkConfig(dns=DNSConfig(domain="example.com"))
        valid_config.kubernetes = KubernetesConfig(distribution="k3s")

        problems = ConfigValidator().validate_network(valid_config)

        assert "DNS provider is required when a domain is set" in problems
        assert "unsupported Kubernetes distribution 'k3s'" in problems

    def test_vpn_server_creation_rejected(self, valid_config):
        valid_config.network = NetworkConfig(
            wireguard=WireGuardConfig(
                enabled=True, create=True, provider="aws", region="us-east-1"
            )
        )

        problems = ConfigValidator().validate_network(valid_config)

        assert any("creating a WireGuard server is not supported" in p for p in problems)
