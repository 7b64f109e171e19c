"""
meshkube/models/cluster_config.py

Pydantic models for the desired-state cluster document:
 - Metadata, ProviderConfig
 - NodeConfig, NodePool
 - NetworkConfig (with WireGuardConfig, TailscaleConfig, DNSConfig)
 - SecurityConfig (with SSHKeyConfig, FirewallConfig)
 - KubernetesConfig, LoadBalancerConfig, StorageConfig, IngressConfig, AddonsConfig
 - ClusterConfig, the root document

The orchestrator holds a ClusterConfig by reference and never copies it, so
mutation by the caller after construction is visible to later phases.
"""

from __future__ import annotations

import ipaddress
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class Metadata(BaseModel):
    """Descriptive cluster metadata exported with the outputs."""

    name: str = ""
    environment: str = "production"
    version: str = "1.0.0"
    description: Optional[str] = None
    owner: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)


class ProviderConfig(BaseModel):
    """
    One cloud account. `credentials` is kept as a raw mapping and validated by
    the provider adapter itself on initialize, since each backend expects a
    different shape (see meshkube.models.credentials).
    """

    enabled: bool = False
    region: Optional[str] = None
    credentials: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)


class NodeConfig(BaseModel):
    """A single standalone node to deploy."""

    name: str
    provider: str
    region: Optional[str] = None
    size: str = ""
    image: str = "ubuntu-22.04"
    roles: List[str] = Field(default_factory=list)
    vpn_ip: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    user_data: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, val: str) -> str:
        if not val.strip():
            raise ValueError("node name must be a non-empty string")
        return val

    @field_validator("vpn_ip")
    @classmethod
    def validate_vpn_ip(cls, val: Optional[str]) -> Optional[str]:
        if val is None:
            return val
        try:
            ipaddress.ip_address(val)
        except ValueError as exc:
            raise ValueError(f"invalid VPN address {val!r}: {exc}") from exc
        return val


class NodePool(BaseModel):
    """
    A named group of identical nodes. `count` is the expected cardinality used
    by the distribution verifier; a pool listing several roles contributes its
    count to each of them.
    """

    name: str = ""
    provider: str
    count: int = Field(default=0, ge=0)
    size: str = ""
    region: Optional[str] = None
    image: str = "ubuntu-22.04"
    roles: List[str] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)
    spot_instance: bool = False


class WireGuardConfig(BaseModel):
    """
    WireGuard overlay settings. Nodes join an existing VPN server whose
    endpoint and public key must be given. `create` is accepted in the document
    but rejected by validation, since no server is provisioned.
    """

    enabled: bool = False
    create: bool = False
    provider: Optional[str] = None
    region: Optional[str] = None
    size: Optional[str] = None
    server_endpoint: Optional[str] = None
    server_public_key: Optional[str] = None
    port: int = Field(default=51820, ge=1, le=65535)
    subnet: str = "10.8.0.0/24"
    mesh_networking: bool = True
    persistent_keepalive: int = Field(default=25, ge=0)
    mtu: int = Field(default=1420, ge=576)


class TailscaleConfig(BaseModel):
    """Tailscale / Headscale overlay settings. Only an existing Headscale server is used."""

    enabled: bool = False
    create: bool = False
    provider: Optional[str] = None
    region: Optional[str] = None
    headscale_url: Optional[str] = None
    auth_key: Optional[str] = None
    namespace: str = "default"
    accept_routes: bool = True


class DNSConfig(BaseModel):
    domain: Optional[str] = None
    provider: Optional[str] = None
    ttl: int = Field(default=300, ge=1)


class NetworkConfig(BaseModel):
    """Network ranges plus the optional VPN and DNS sub-configurations."""

    cidr: str = "10.0.0.0/16"
    pod_cidr: str = "10.42.0.0/16"
    service_cidr: str = "10.43.0.0/16"
    wireguard: Optional[WireGuardConfig] = None
    tailscale: Optional[TailscaleConfig] = None
    dns: DNSConfig = Field(default_factory=DNSConfig)

    @field_validator("cidr", "pod_cidr", "service_cidr")
    @classmethod
    def validate_cidr(cls, val: str) -> str:
        try:
            ipaddress.ip_network(val, strict=False)
        except ValueError as exc:
            raise ValueError(f"invalid CIDR {val!r}: {exc}") from exc
        return val


class SSHKeyConfig(BaseModel):
    """
    SSH credentials used to reach every node. If private_key is empty a fresh
    ed25519 pair is generated during the SSH key phase.
    """

    user: str = "ubuntu"
    port: int = Field(default=22, ge=1, le=65535)
    private_key: Optional[str] = None
    public_key: Optional[str] = None


class FirewallRule(BaseModel):
    protocol: str = "tcp"
    port: str
    source: List[str] = Field(default_factory=lambda: ["0.0.0.0/0"])
    description: str = ""

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, val: str) -> str:
        if val not in ("tcp", "udp", "icmp"):
            raise ValueError(f"unsupported protocol {val!r}")
        return val


class FirewallConfig(BaseModel):
    name: str = "cluster-firewall"
    inbound_rules: List[FirewallRule] = Field(default_factory=list)
    outbound_rules: List[FirewallRule] = Field(default_factory=list)


class SecurityConfig(BaseModel):
    ssh: SSHKeyConfig = Field(default_factory=SSHKeyConfig)
    firewall: Optional[FirewallConfig] = None


class KubernetesConfig(BaseModel):
    """Cluster bootstrap settings. Only rke2 is installed by this package."""

    distribution: str = "rke2"
    version: Optional[str] = None
    channel: Optional[str] = None
    cluster_cidr: Optional[str] = None
    service_cidr: Optional[str] = None
    tls_san: List[str] = Field(default_factory=list)


class LoadBalancerConfig(BaseModel):
    name: str = "api-lb"
    provider: str
    type: str = "tcp"
    ports: List[int] = Field(default_factory=lambda: [6443])
    health_check_port: Optional[int] = None


class StorageClass(BaseModel):
    name: str
    provisioner: str
    parameters: Dict[str, str] = Field(default_factory=dict)
    reclaim_policy: str = "Delete"
    default: bool = False


class StorageConfig(BaseModel):
    classes: List[StorageClass] = Field(default_factory=list)


class IngressConfig(BaseModel):
    enabled: bool = False
    controller: str = "nginx"
    version: str = "v1.10.1"


class ArgoCDConfig(BaseModel):
    enabled: bool = False
    version: str = "stable"
    namespace: str = "argocd"
    repo_url: Optional[str] = None


class AddonsConfig(BaseModel):
    argocd: Optional[ArgoCDConfig] = None


class ClusterConfig(BaseModel):
    """
    The full desired-state document consumed by the orchestrator.

    At most one enabled configuration per provider kind: `providers` is keyed
    by provider name, so duplicates collapse by construction.
    """

    metadata: Metadata = Field(default_factory=Metadata)
    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    nodes: List[NodeConfig] = Field(default_factory=list)
    node_pools: Dict[str, NodePool] = Field(default_factory=dict)
    load_balancer: Optional[LoadBalancerConfig] = None
    storage: Optional[StorageConfig] = None
    ingress: Optional[IngressConfig] = None
    addons: AddonsConfig = Field(default_factory=AddonsConfig)
    monitoring: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def fill_pool_names(self) -> ClusterConfig:
        """Default each pool's `name` to its mapping key."""
        for key, pool in self.node_pools.items():
            if not pool.name:
                pool.name = key
        return self

    def enabled_providers(self) -> List[str]:
        return [name for name, cfg in self.providers.items() if cfg.enabled]

    def to_yaml(self, *, sort_keys: bool = False) -> str:
        """Serialize this ClusterConfig to a YAML string using PyYAML."""
        return yaml.safe_dump(
            self.model_dump(mode="json", exclude_none=True), sort_keys=sort_keys
        )

    @classmethod
    def from_yaml(cls, yaml_str: str) -> ClusterConfig:
        """Deserialize a ClusterConfig from a YAML string."""
        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)


__all__ = [
    "Metadata",
    "ProviderConfig",
    "NodeConfig",
    "NodePool",
    "WireGuardConfig",
    "TailscaleConfig",
    "DNSConfig",
    "NetworkConfig",
    "SSHKeyConfig",
    "FirewallRule",
    "FirewallConfig",
    "SecurityConfig",
    "KubernetesConfig",
    "LoadBalancerConfig",
    "StorageClass",
    "StorageConfig",
    "IngressConfig",
    "ArgoCDConfig",
    "AddonsConfig",
    "ClusterConfig",
]
