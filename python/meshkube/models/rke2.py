"""
meshkube/models/rke2.py

Defines Pydantic models for RKE2 usage:
 - RKE2NodeConfig: the /etc/rancher/rke2/config.yaml written to each node
 - RKE2Credentials: what a successful bootstrap hands back
"""

from __future__ import annotations

from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field


class RKE2NodeConfig(BaseModel):
    """
    Subset of RKE2's config.yaml that meshkube manages. Field names use
    underscores and are dumped with dashes, as RKE2 expects.
    """

    server: Optional[str] = None
    token: Optional[str] = None
    node_ip: Optional[str] = None
    node_external_ip: Optional[str] = None
    node_name: Optional[str] = None
    tls_san: List[str] = Field(default_factory=list)
    cluster_cidr: Optional[str] = None
    service_cidr: Optional[str] = None
    node_label: List[str] = Field(default_factory=list)

    def to_yaml(self) -> str:
        data = {
            key.replace("_", "-"): value
            for key, value in self.model_dump(exclude_none=True).items()
            if value != []
        }
        return yaml.safe_dump(data, sort_keys=False)


class RKE2Credentials(BaseModel):
    """
    Captures essential cluster credentials post-deployment:
      - kubeconfig: admin kubeconfig with the server URL pointing at the bootstrap node
      - join_token: the node token used by new servers/agents to join
      - server_ip: address other nodes join through
      - control_plane_nodes: names of every server node
    """

    kubeconfig: str
    join_token: str
    server_ip: str
    control_plane_nodes: List[str] = Field(default_factory=list)
    node_roles: Dict[str, str] = Field(default_factory=dict)
