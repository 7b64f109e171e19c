"""
meshkube/models/nodes.py

Defines the materialized resources returned by provider adapters:
 - NodeOutput
 - NetworkOutput
 - LoadBalancerOutput

Also defines the role predicates shared by the node inventory and the
distribution verifier. Roles are free-form strings; only "master",
"controlplane" and "worker" carry meaning here.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

ROLE_LABEL = "role"
MASTER_ROLES = ("master", "controlplane")
WORKER_ROLE = "worker"


def is_master_role(role: Optional[str]) -> bool:
    return role in MASTER_ROLES


def is_worker_role(role: Optional[str]) -> bool:
    return role == WORKER_ROLE


def has_master_role(roles: Iterable[str]) -> bool:
    return any(is_master_role(r) for r in roles)


def has_worker_role(roles: Iterable[str]) -> bool:
    return any(is_worker_role(r) for r in roles)


def primary_role(roles: Iterable[str]) -> Optional[str]:
    """
    Pick the value of the `role` label for a node declared with `roles`.

    A master role wins over worker so that combined pools bootstrap as servers.
    Returns None for an empty list.
    """
    role_list = list(roles)
    masters = [r for r in role_list if is_master_role(r)]
    if masters:
        return masters[0]
    return role_list[0] if role_list else None


class NodeOutput(BaseModel):
    """
    A node created by a provider adapter.

    Attributes:
        name: Node name, unique across the cluster.
        provider: Name of the provider adapter that created it.
        region: Region or zone of the instance.
        size: Instance type / size slug.
        public_ip: Public address, if any.
        private_ip: Address within the provider network.
        vpn_ip: Overlay address, if assigned.
        labels: Free-form labels. The `role` key drives master/worker queries.
        id: Provider-specific instance identifier.
    """

    name: str
    provider: str
    region: Optional[str] = None
    size: Optional[str] = None
    public_ip: Optional[str] = None
    private_ip: Optional[str] = None
    vpn_ip: Optional[str] = None
    labels: Optional[Dict[str, str]] = None
    id: Optional[str] = None

    @property
    def role(self) -> Optional[str]:
        if not self.labels:
            return None
        return self.labels.get(ROLE_LABEL)

    @property
    def is_master(self) -> bool:
        return is_master_role(self.role)

    @property
    def is_worker(self) -> bool:
        return is_worker_role(self.role)

    @property
    def ssh_host(self) -> Optional[str]:
        """Address to reach the node over SSH, preferring the public one."""
        return self.public_ip or self.private_ip


class NetworkOutput(BaseModel):
    provider: str
    id: Optional[str] = None
    cidr: str
    region: Optional[str] = None
    subnets: List[str] = Field(default_factory=list)


class LoadBalancerOutput(BaseModel):
    name: str
    provider: str
    id: Optional[str] = None
    ip: Optional[str] = None
    hostname: Optional[str] = None
    status: str = "active"


__all__ = [
    "ROLE_LABEL",
    "MASTER_ROLES",
    "WORKER_ROLE",
    "is_master_role",
    "is_worker_role",
    "has_master_role",
    "has_worker_role",
    "primary_role",
    "NodeOutput",
    "NetworkOutput",
    "LoadBalancerOutput",
]
