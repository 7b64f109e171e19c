"""
meshkube/models/outputs.py

Models for what a deployment run leaves behind:
 - NodeSummary / ClusterOutputs: the observable outputs exported after a run.
 - DeploymentMetadata: bookkeeping carried from one run to the next.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ScaleOperation = Literal["initial", "scale-up", "scale-down", "update"]


class NodeSummary(BaseModel):
    name: str
    provider: str
    region: Optional[str] = None
    size: Optional[str] = None
    public_ip: Optional[str] = None
    private_ip: Optional[str] = None
    vpn_ip: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    status: str = "unknown"


class ClusterOutputs(BaseModel):
    """
    Observable outputs of a run.

    Attributes:
        cluster_name / environment / version: from the config metadata.
        nodes: provider name -> node summaries, in deployment order.
        vpn_mode: "wireguard", "tailscale" or "none".
        api_endpoint: https URL of the first master, if any.
        kubeconfig: admin kubeconfig if the cluster was bootstrapped.
    """

    cluster_name: str
    environment: str
    version: str
    nodes: Dict[str, List[NodeSummary]] = Field(default_factory=dict)
    vpn_mode: str = "none"
    api_endpoint: Optional[str] = None
    kubeconfig: Optional[str] = None
    load_balancer_ip: Optional[str] = None


class DeploymentMetadata(BaseModel):
    """
    Tracks deployment history for a cluster across runs.

    `deployment_id` has the form ``deploy-<count>-<YYYY-MM-DD>``.
    """

    created_at: datetime
    updated_at: datetime
    last_deployed_at: datetime
    deployment_id: str
    deployment_count: int = Field(ge=1)
    last_scale_operation: ScaleOperation = "initial"
    previous_node_count: int = 0
    current_node_count: int = 0
    node_pools_added: List[str] = Field(default_factory=list)
    node_pools_removed: List[str] = Field(default_factory=list)
    node_pools_scaled: Dict[str, str] = Field(default_factory=dict)
    pool_counts: Dict[str, int] = Field(default_factory=dict)
    config_checksum: str
