from __future__ import annotations

from datetime import datetime, timezone

from meshkube.metadata import (
    config_checksum,
    generate_deployment_metadata,
    sanitize_config_for_storage,
)
from meshkube.models.cluster_config import (
    ClusterConfig,
    Metadata,
    NetworkConfig,
    NodePool,
    ProviderConfig,
    SecurityConfig,
    SSHKeyConfig,
    TailscaleConfig,
)

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 3, 8, 12, 0, tzinfo=timezone.utc)


def config_with(pools):
    return ClusterConfig(
        metadata=Metadata(name="demo"),
        providers={"aws": ProviderConfig(enabled=True)},
        node_pools={
            name: NodePool(provider="aws", count=count, roles=["worker"])
            for name, count in pools.items()
        },
    )


class TestSanitize:
    def test_secrets_replaced_with_placeholders(self):
        config = ClusterConfig(
            providers={
                "aws": ProviderConfig(
                    enabled=True,
                    credentials={"access_key_id": "AKIA", "secret_access_key": "s3cret"},
                ),
                "hetzner": ProviderConfig(enabled=True, credentials={"token": "abc"}),
                "custom": ProviderConfig(enabled=True, credentials={"api_key": "k"}),
            },
            network=NetworkConfig(
                tailscale=TailscaleConfig(enabled=True, auth_key="tskey-live")
            ),
            security=SecurityConfig(ssh=SSHKeyConfig(private_key="-----BEGIN OPENSSH")),
        )

        data = sanitize_config_for_storage(config)

        assert data["providers"]["aws"]["credentials"]["access_key_id"] == "${AWS_ACCESS_KEY_ID}"
        assert data["providers"]["custom"]["credentials"]["api_key"] == "${CUSTOM_API_KEY}"
        assert data["security"]["ssh"]["private_key"] == "${SSH_PRIVATE_KEY}"
        assert data["network"]["tailscale"]["auth_key"] == "${TAILSCALE_AUTH_KEY}"
        flat = str(data)
        for secret in ("AKIA", "s3cret", "abc", "tskey-live", "BEGIN OPENSSH"):
            assert secret not in flat

    def test_original_config_untouched(self):
        config = ClusterConfig(
            providers={"aws": ProviderConfig(enabled=True, credentials={"access_key_id": "AKIA"})}
        )
        sanitize_config_for_storage(config)
        assert config.providers["aws"].credentials["access_key_id"] == "AKIA"

    def test_checksum_ignores_secret_values(self):
        a = ClusterConfig(providers={"aws": ProviderConfig(credentials={"access_key_id": "one"})})
        b = ClusterConfig(providers={"aws": ProviderConfig(credentials={"access_key_id": "two"})})
        assert config_checksum(a) == config_checksum(b)


class TestDeploymentMetadata:
    def test_initial(self):
        meta = generate_deployment_metadata(config_with({"web": 3}), now=T0)

        assert meta.deployment_id == "deploy-1-2024-03-01"
        assert meta.last_scale_operation == "initial"
        assert meta.current_node_count == 3
        assert meta.node_pools_added == ["web"]

    def test_scale_up_and_pool_changes(self):
        first = generate_deployment_metadata(config_with({"web": 3, "db": 1}), now=T0)
        second = generate_deployment_metadata(
            config_with({"web": 5, "cache": 1}), previous=first, now=T1
        )

        assert second.deployment_id == "deploy-2-2024-03-08"
        assert second.created_at == T0
        assert second.last_scale_operation == "scale-up"
        assert second.previous_node_count == 4
        assert second.current_node_count == 6
        assert second.node_pools_added == ["cache"]
        assert second.node_pools_removed == ["db"]
        assert second.node_pools_scaled == {"web": "3->5"}

    def test_scale_down_and_update(self):
        first = generate_deployment_metadata(config_with({"web": 3}), now=T0)
        down = generate_deployment_metadata(config_with({"web": 1}), previous=first, now=T1)
        same = generate_deployment_metadata(config_with({"web": 1}), previous=down, now=T1)

        assert down.last_scale_operation == "scale-down"
        assert same.last_scale_operation == "update"
        assert same.deployment_count == 3
        assert same.node_pools_scaled == {}
