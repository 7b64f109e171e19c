"""
meshkube/providers/terraform.py

A ProviderAdapter that drives one Terraform root module per resource kind:

    <terraform_roots>/<provider>/node
    <terraform_roots>/<provider>/network
    <terraform_roots>/<provider>/firewall
    <terraform_roots>/<provider>/load_balancer

Every create call applies into its own workspace, and every workspace is
remembered together with the variables it was applied with so `cleanup` can
destroy them in reverse creation order.

Root modules share one variable vocabulary (name, count, size, region, image,
ssh_public_key, labels, ...) and one output vocabulary:
  - node roots output `nodes`: a list of {name, id, public_ip, private_ip}
  - network roots output `network_id` and `subnets`
  - load balancer roots output `lb_id`, `ip` and `hostname`
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from meshkube.context import DeployContext
from meshkube.errors import DeploymentError
from meshkube.models.cluster_config import (
    ClusterConfig,
    FirewallConfig,
    LoadBalancerConfig,
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
from meshkube.providers.base import ProviderAdapter
from meshkube.settings import MeshkubeSettings
from meshkube.utils.terraform import TerraformRunner

logger = logging.getLogger(__name__)


class TerraformProviderAdapter(ProviderAdapter):
    """
    Base class for the concrete cloud adapters in meshkube.providers.clouds.

    Subclasses only declare data: their name, credentials model, regions,
    sizes and image aliases.
    """

    name: ClassVar[str] = ""
    credentials_model: ClassVar[Type[BaseModel]]
    regions: ClassVar[List[str]] = []
    sizes: ClassVar[List[str]] = []
    default_region: ClassVar[str] = ""
    default_size: ClassVar[str] = ""
    image_aliases: ClassVar[Dict[str, str]] = {}

    def __init__(self, settings: Optional[MeshkubeSettings] = None) -> None:
        self.settings = settings or MeshkubeSettings()
        self.provider_config: Optional[ProviderConfig] = None
        self.region = self.default_region
        self.cluster_name = ""
        self._env: Dict[str, str] = {}
        self._ssh_public_key: Optional[str] = None
        self._runners: Dict[str, TerraformRunner] = {}
        self._created: List[Tuple[str, str, Dict[str, Any]]] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Contract getters
    # ------------------------------------------------------------------

    def get_name(self) -> str:
        return self.name

    def get_regions(self) -> List[str]:
        return list(self.regions)

    def get_sizes(self) -> List[str]:
        return list(self.sizes)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def resolve_image(self, image: str) -> str:
        return self.image_aliases.get(image, image)

    def _runner(self, kind: str) -> TerraformRunner:
        with self._lock:
            runner = self._runners.get(kind)
            if runner is None:
                runner = TerraformRunner(
                    os.path.join(self.settings.terraform_roots, self.name, kind),
                    self._env,
                    binary=self.settings.terraform_binary,
                    retries=self.settings.command_retries,
                    retry_delay=self.settings.command_retry_delay,
                    ephemeral_dir=self.settings.ephemeral_dir,
                )
                self._runners[kind] = runner
            return runner

    def _base_variables(self) -> Dict[str, Any]:
        return {"cluster_name": self.cluster_name, "region": self.region}

    async def _apply(
        self, kind: str, workspace: str, variables: Dict[str, Any]
    ) -> Dict[str, Any]:
        runner = self._runner(kind)
        with self._lock:
            self._created.append((kind, workspace, variables))
        await runner.apply(workspace, variables)
        return await runner.output(workspace)

    def _parse_nodes(
        self,
        outputs: Dict[str, Any],
        names: List[str],
        size: str,
        region: str,
        labels: Dict[str, str],
        vpn_ip: Optional[str] = None,
    ) -> List[NodeOutput]:
        raw_nodes = outputs.get("nodes") or []
        if len(raw_nodes) != len(names):
            raise DeploymentError(
                f"{self.name} returned {len(raw_nodes)} nodes, expected {len(names)}"
            )
        return [
            NodeOutput(
                name=item.get("name") or fallback,
                provider=self.name,
                region=region,
                size=size,
                public_ip=item.get("public_ip"),
                private_ip=item.get("private_ip"),
                vpn_ip=vpn_ip,
                labels=dict(labels),
                id=str(item["id"]) if item.get("id") is not None else None,
            )
            for item, fallback in zip(raw_nodes, names)
        ]

    # ------------------------------------------------------------------
    # Contract operations
    # ------------------------------------------------------------------

    async def initialize(self, ctx: DeployContext, cluster_config: ClusterConfig) -> None:
        """Validate this provider's credentials and prepare Terraform env vars.

        Raises:
            ValueError: If the provider is missing or disabled in the config.
            pydantic.ValidationError: If the credentials do not match the model.
        """
        pcfg = cluster_config.providers.get(self.name)
        if pcfg is None or not pcfg.enabled:
            raise ValueError(f"provider {self.name} is not enabled in the cluster config")

        creds = self.credentials_model.model_validate(pcfg.credentials)
        self._env = creds.to_env_dict()  # type: ignore[attr-defined]
        self.provider_config = pcfg
        self.region = pcfg.region or self.default_region
        self.cluster_name = cluster_config.metadata.name
        self._ssh_public_key = ctx.ssh_public_key
        if self.regions and self.region not in self.regions:
            logger.warning("%s: region %s is not in the known region list", self.name, self.region)
        logger.info("Initialized provider %s in %s", self.name, self.region)

    async def create_node(self, ctx: DeployContext, node: NodeConfig) -> NodeOutput:
        size = node.size or self.default_size
        region = node.region or self.region
        labels = dict(node.labels)
        role = primary_role(node.roles)
        if role:
            labels[ROLE_LABEL] = role

        variables = self._base_variables()
        variables.update(
            {
                "name": node.name,
                "count": 1,
                "size": size,
                "region": region,
                "image": self.resolve_image(node.image),
                "ssh_public_key": ctx.ssh_public_key or self._ssh_public_key or "",
                "labels": labels,
                "user_data": node.user_data or "",
            }
        )
        outputs = await self._apply("node", ctx.workspace_name(self.name, "node", node.name), variables)
        return self._parse_nodes(outputs, [node.name], size, region, labels, node.vpn_ip)[0]

    async def create_node_pool(self, ctx: DeployContext, pool: NodePool) -> List[NodeOutput]:
        if pool.count == 0:
            return []
        size = pool.size or self.default_size
        region = pool.region or self.region
        labels = dict(pool.labels)
        labels["pool"] = pool.name
        role = primary_role(pool.roles)
        if role:
            labels[ROLE_LABEL] = role

        variables = self._base_variables()
        variables.update(
            {
                "name": pool.name,
                "count": pool.count,
                "size": size,
                "region": region,
                "image": self.resolve_image(pool.image),
                "ssh_public_key": ctx.ssh_public_key or self._ssh_public_key or "",
                "labels": labels,
                "spot": pool.spot_instance,
            }
        )
        outputs = await self._apply("node", ctx.workspace_name(self.name, "pool", pool.name), variables)
        names = [f"{pool.name}-{i + 1}" for i in range(pool.count)]
        return self._parse_nodes(outputs, names, size, region, labels)

    async def create_network(self, ctx: DeployContext, network: NetworkConfig) -> NetworkOutput:
        variables = self._base_variables()
        variables["cidr"] = network.cidr
        outputs = await self._apply("network", ctx.workspace_name(self.name, "network"), variables)
        return NetworkOutput(
            provider=self.name,
            id=outputs.get("network_id"),
            cidr=network.cidr,
            region=self.region,
            subnets=list(outputs.get("subnets") or []),
        )

    async def create_firewall(
        self, ctx: DeployContext, firewall: FirewallConfig, node_ids: List[str]
    ) -> None:
        variables = self._base_variables()
        variables.update(
            {
                "name": firewall.name,
                "inbound_rules": [r.model_dump() for r in firewall.inbound_rules],
                "outbound_rules": [r.model_dump() for r in firewall.outbound_rules],
                "node_ids": list(node_ids),
            }
        )
        await self._apply("firewall", ctx.workspace_name(self.name, "firewall", firewall.name), variables)

    async def create_load_balancer(
        self, ctx: DeployContext, lb: LoadBalancerConfig
    ) -> LoadBalancerOutput:
        variables = self._base_variables()
        variables.update(
            {
                "name": lb.name,
                "type": lb.type,
                "ports": list(lb.ports),
                "health_check_port": lb.health_check_port or lb.ports[0],
            }
        )
        outputs = await self._apply("load_balancer", ctx.workspace_name(self.name, "lb", lb.name), variables)
        return LoadBalancerOutput(
            name=lb.name,
            provider=self.name,
            id=outputs.get("lb_id"),
            ip=outputs.get("ip"),
            hostname=outputs.get("hostname"),
        )

    async def cleanup(self, ctx: DeployContext) -> None:
        """Destroy every workspace this adapter applied, newest first.

        Keeps going after a failed destroy and raises one DeploymentError
        listing every failure at the end.
        """
        with self._lock:
            created = list(reversed(self._created))
        errors: List[str] = []
        remaining: List[Tuple[str, str, Dict[str, Any]]] = []
        for entry in created:
            kind, workspace, variables = entry
            try:
                await self._runner(kind).destroy(workspace, variables)
                logger.info("Destroyed %s workspace %s", self.name, workspace)
            except Exception as exc:
                logger.error("Failed to destroy %s workspace %s: %s", self.name, workspace, exc)
                errors.append(f"{workspace}: {exc}")
                remaining.append(entry)
        with self._lock:
            # failed workspaces stay tracked so a later cleanup can retry them
            self._created = list(reversed(remaining))
        if errors:
            raise DeploymentError(
                f"failed to destroy {len(errors)} {self.name} workspace(s): " + "; ".join(errors)
            )
