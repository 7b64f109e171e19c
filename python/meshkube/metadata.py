"""
meshkube/metadata.py

Deployment bookkeeping carried across runs, and the sanitized form of a
cluster config that is safe to export.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from meshkube.models.cluster_config import ClusterConfig
from meshkube.models.credentials import credential_placeholders
from meshkube.models.outputs import DeploymentMetadata, ScaleOperation


def sanitize_config_for_storage(config: ClusterConfig) -> Dict[str, Any]:
    """
    Dump `config` with every secret replaced by a `${ENV_VAR}` placeholder.

    Provider credentials use the variable name their provider reads; the SSH
    private key and VPN auth material use a generic placeholder.
    """
    data = config.model_dump(mode="json")
    for name, provider in data.get("providers", {}).items():
        placeholders = credential_placeholders.get(name, {})
        provider["credentials"] = {
            key: placeholders.get(key, f"${{{name.upper()}_{key.upper()}}}")
            for key in provider.get("credentials", {})
        }
    ssh = data.get("security", {}).get("ssh", {})
    if ssh.get("private_key"):
        ssh["private_key"] = "${SSH_PRIVATE_KEY}"
    tailscale = data.get("network", {}).get("tailscale") or {}
    if tailscale.get("auth_key"):
        tailscale["auth_key"] = "${TAILSCALE_AUTH_KEY}"
    return data


def config_checksum(config: ClusterConfig) -> str:
    payload = json.dumps(sanitize_config_for_storage(config), sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def declared_node_count(config: ClusterConfig) -> int:
    return len(config.nodes) + sum(p.count for p in config.node_pools.values())


def generate_deployment_metadata(
    config: ClusterConfig,
    previous: Optional[DeploymentMetadata] = None,
    now: Optional[datetime] = None,
) -> DeploymentMetadata:
    """Build metadata for the current run, diffing pool counts against `previous`."""
    now = now or datetime.now(timezone.utc)
    pool_counts = {name: pool.count for name, pool in config.node_pools.items()}
    current = declared_node_count(config)

    if previous is None:
        return DeploymentMetadata(
            created_at=now,
            updated_at=now,
            last_deployed_at=now,
            deployment_id=f"deploy-1-{now:%Y-%m-%d}",
            deployment_count=1,
            last_scale_operation="initial",
            previous_node_count=0,
            current_node_count=current,
            node_pools_added=sorted(pool_counts),
            pool_counts=pool_counts,
            config_checksum=config_checksum(config),
        )

    count = previous.deployment_count + 1
    before = previous.pool_counts
    operation: ScaleOperation
    if current > previous.current_node_count:
        operation = "scale-up"
    elif current < previous.current_node_count:
        operation = "scale-down"
    else:
        operation = "update"

    return DeploymentMetadata(
        created_at=previous.created_at,
        updated_at=now,
        last_deployed_at=now,
        deployment_id=f"deploy-{count}-{now:%Y-%m-%d}",
        deployment_count=count,
        last_scale_operation=operation,
        previous_node_count=previous.current_node_count,
        current_node_count=current,
        node_pools_added=sorted(set(pool_counts) - set(before)),
        node_pools_removed=sorted(set(before) - set(pool_counts)),
        node_pools_scaled={
            name: f"{before[name]}->{n}"
            for name, n in pool_counts.items()
            if name in before and before[name] != n
        },
        pool_counts=pool_counts,
        config_checksum=config_checksum(config),
    )
