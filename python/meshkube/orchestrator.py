"""
meshkube/orchestrator.py

ClusterOrchestrator sequences the deployment pipeline for one ClusterConfig:

   1) SSH keys            7) distribution check
   2) providers           8) firewalls, VPN mesh, VPN readiness
   3) networking          9) cluster bootstrap and add-ons
   4) VPN selection      10) load balancer, storage, ingress
   5) DNS                11) outputs
   6) nodes and pools

The orchestrator owns the provider registry and the node inventory. Every other
manager stays None until the phase that needs it runs, so "not configured yet"
is observable. Any phase failure aborts the pipeline and nothing is rolled
back; the inventory keeps every node that was deployed before the failure.
`cleanup` is separate and never raises.

The ClusterConfig is held by reference, not copied.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from meshkube.context import DeployContext
from meshkube.deployment.rke2 import RKE2Manager
from meshkube.errors import (
    CommandError,
    DeploymentError,
    NoProvidersEnabledError,
    PhaseOrderError,
    ProviderInitializationError,
    ProviderNotFoundError,
    ValidationFailedError,
)
from meshkube.health import HealthChecker
from meshkube.inventory import NodeInventory
from meshkube.managers.addons import AddonsManager
from meshkube.managers.dns import DNSManager
from meshkube.managers.firewall import FirewallManager
from meshkube.managers.ingress import IngressManager
from meshkube.managers.network import NetworkManager
from meshkube.managers.ssh_keys import SSHKeyManager
from meshkube.metadata import generate_deployment_metadata, sanitize_config_for_storage
from meshkube.models.cluster_config import ClusterConfig, NodeConfig, NodePool
from meshkube.models.nodes import LoadBalancerOutput, NetworkOutput, NodeOutput
from meshkube.models.outputs import ClusterOutputs, DeploymentMetadata, NodeSummary
from meshkube.models.ssh import SSHKeyPair
from meshkube.providers.base import ProviderAdapter
from meshkube.providers.clouds import build_provider_adapter
from meshkube.providers.registry import ProviderRegistry
from meshkube.settings import MeshkubeSettings
from meshkube.utils.ssh import SSHConnector
from meshkube.validation import ConfigValidator
from meshkube.verification import verify_node_distribution as verify_distribution
from meshkube.vpn.selector import VPNMode, select_and_validate
from meshkube.vpn.tailscale import TailscaleManager
from meshkube.vpn.wireguard import WireGuardManager

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str], ProviderAdapter]


class ClusterOrchestrator:
    """
    Args:
        ctx: Execution context handed to every adapter call.
        config: Desired state. Held by reference.
        settings: Runtime settings; read from the environment if omitted.
        adapter_factory: Builds the adapter for a provider name. Defaults to
            the Terraform-backed adapters in meshkube.providers.clouds.
        previous_metadata: Metadata from the last run, for scale diffing.
    """

    def __init__(
        self,
        ctx: DeployContext,
        config: ClusterConfig,
        *,
        settings: Optional[MeshkubeSettings] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        previous_metadata: Optional[DeploymentMetadata] = None,
    ) -> None:
        self.ctx = ctx
        self.config = config
        self.settings = settings or MeshkubeSettings()
        self._adapter_factory: AdapterFactory = adapter_factory or (
            lambda name: build_provider_adapter(name, self.settings)
        )
        self.previous_metadata = previous_metadata

        self.provider_registry = ProviderRegistry()
        self.inventory = NodeInventory()
        self.health_checker = HealthChecker()
        self.validator = ConfigValidator()

        self.ssh_key_manager: Optional[SSHKeyManager] = None
        self.connector: Optional[SSHConnector] = None
        self.network_manager: Optional[NetworkManager] = None
        self.wireguard_manager: Optional[WireGuardManager] = None
        self.tailscale_manager: Optional[TailscaleManager] = None
        self.dns_manager: Optional[DNSManager] = None
        self.firewall_manager: Optional[FirewallManager] = None
        self.rke_manager: Optional[RKE2Manager] = None
        self.addons_manager: Optional[AddonsManager] = None
        self.ingress_manager: Optional[IngressManager] = None

        self.vpn_mode: Optional[VPNMode] = None
        self.vpn_addresses: Dict[str, str] = {}
        self.ssh_keys: Optional[SSHKeyPair] = None
        self.networks: Dict[str, NetworkOutput] = {}
        self.load_balancer: Optional[LoadBalancerOutput] = None
        self.metadata: Optional[DeploymentMetadata] = None
        self.outputs: Optional[ClusterOutputs] = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_providers(self) -> None:
        if len(self.provider_registry) == 0:
            raise NoProvidersEnabledError()

    def _adapter_for(self, provider: str) -> ProviderAdapter:
        adapter, found = self.provider_registry.get(provider)
        if not found or adapter is None:
            raise ProviderNotFoundError(provider)
        return adapter

    def _require_connector(self, phase: str) -> SSHConnector:
        if self.connector is None:
            raise PhaseOrderError(f"SSH keys not generated - cannot run {phase}")
        return self.connector

    def vpn_address(self, node: NodeOutput) -> Optional[str]:
        return self.vpn_addresses.get(node.name) or node.vpn_ip

    # ------------------------------------------------------------------
    # 1) SSH keys
    # ------------------------------------------------------------------

    def generate_ssh_keys(self) -> SSHKeyPair:
        if self.ssh_key_manager is None:
            self.ssh_key_manager = SSHKeyManager(
                self.config.security.ssh, comment=f"meshkube-{self.config.metadata.name}"
            )
        self.ssh_keys = self.ssh_key_manager.generate()
        self.ctx.ssh_public_key = self.ssh_keys.public_key
        ssh_cfg = self.config.security.ssh
        self.connector = SSHConnector(
            self.ssh_keys.private_key,
            user=ssh_cfg.user or self.settings.ssh_user,
            port=ssh_cfg.port,
            connect_retries=self.settings.ssh_connect_retries,
        )
        logger.info("SSH key ready (%s)", self.ssh_keys.fingerprint)
        return self.ssh_keys

    # ------------------------------------------------------------------
    # 2) Providers
    # ------------------------------------------------------------------

    async def initialize_providers(self) -> List[str]:
        """Build, initialize and register an adapter for every enabled provider.

        Raises:
            NoProvidersEnabledError: If no provider is enabled.
            ProviderInitializationError: Wrapping the first adapter failure.
        """
        enabled = self.config.enabled_providers()
        if not enabled:
            raise NoProvidersEnabledError()

        for name in enabled:
            try:
                adapter = self._adapter_factory(name)
                await adapter.initialize(self.ctx, self.config)
            except Exception as exc:
                raise ProviderInitializationError(name, exc) from exc
            self.provider_registry.register(name, adapter)
            logger.info("Provider %s registered", name)
        return enabled

    # ------------------------------------------------------------------
    # 3) Networking
    # ------------------------------------------------------------------

    async def create_networking(self) -> Dict[str, NetworkOutput]:
        self._require_providers()
        if self.network_manager is None:
            self.network_manager = NetworkManager(self.provider_registry, self.config.network)
        self.networks = await self.network_manager.create_networks(self.ctx)
        return self.networks

    # ------------------------------------------------------------------
    # 4) VPN selection
    # ------------------------------------------------------------------

    async def configure_vpn(self) -> VPNMode:
        """Select the VPN mode and validate it. Node-side setup happens in
        configure_vpn_mesh, once nodes exist."""
        mode = select_and_validate(self.config.network)
        self.vpn_mode = mode
        if mode is VPNMode.tailscale and self.tailscale_manager is None:
            assert self.config.network.tailscale is not None
            self.tailscale_manager = TailscaleManager(self.config.network.tailscale, self.connector)
        elif mode is VPNMode.wireguard and self.wireguard_manager is None:
            assert self.config.network.wireguard is not None
            self.wireguard_manager = WireGuardManager(self.config.network.wireguard, self.connector)
        logger.info("VPN mode: %s", mode.value)
        return mode

    # ------------------------------------------------------------------
    # 5) DNS
    # ------------------------------------------------------------------

    async def configure_dns(self) -> DNSManager:
        self._require_providers()
        if self.dns_manager is None:
            self.dns_manager = DNSManager(self.config.network.dns)
            self.dns_manager.validate()
        if not self.dns_manager.enabled:
            logger.info("No DNS domain configured; skipping DNS records")
        return self.dns_manager

    # ------------------------------------------------------------------
    # 6) Nodes
    # ------------------------------------------------------------------

    async def deploy_node(self, node: NodeConfig) -> NodeOutput:
        """Create one node. Adapter errors propagate unchanged and leave the
        inventory untouched."""
        adapter = self._adapter_for(node.provider)
        output = await adapter.create_node(self.ctx, node)
        self.inventory.add(node.provider, output)
        logger.info("Deployed node %s on %s", output.name, node.provider)
        return output

    async def deploy_node_pool(self, name: str, pool: NodePool) -> List[NodeOutput]:
        """Create a whole pool; its nodes are recorded all together or not at all."""
        adapter = self._adapter_for(pool.provider)
        outputs = await adapter.create_node_pool(self.ctx, pool)
        self.inventory.extend(pool.provider, outputs)
        logger.info("Deployed node pool %s: %d nodes on %s", name, len(outputs), pool.provider)
        return outputs

    async def deploy_all(self) -> int:
        """Deploy standalone nodes in order, then every pool.

        Stops at the first failure; nodes already deployed stay in the inventory.

        Returns:
            The number of nodes in the inventory afterwards.
        """
        for node in self.config.nodes:
            try:
                await self.deploy_node(node)
            except Exception as exc:
                raise DeploymentError(
                    f"failed to deploy node {node.name}: {exc}", node.name
                ) from exc

        for name, pool in self.config.node_pools.items():
            try:
                await self.deploy_node_pool(name, pool)
            except Exception as exc:
                raise DeploymentError(
                    f"failed to deploy node pool {name}: {exc}", name
                ) from exc
        return len(self.inventory)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_node_by_name(self, name: str) -> NodeOutput:
        return self.inventory.find(name)

    def get_nodes_by_provider(self, provider: str) -> List[NodeOutput]:
        return self.inventory.by_provider(provider)

    def get_master_nodes(self) -> List[NodeOutput]:
        return self.inventory.masters()

    def get_worker_nodes(self) -> List[NodeOutput]:
        return self.inventory.workers()

    def get_all_nodes(self) -> List[NodeOutput]:
        return self.inventory.all_nodes()

    # ------------------------------------------------------------------
    # 7) Distribution
    # ------------------------------------------------------------------

    def verify_node_distribution(self) -> None:
        verify_distribution(self.config.node_pools, self.inventory.snapshot())
        logger.info("Node distribution verified (%d nodes)", len(self.inventory))

    # ------------------------------------------------------------------
    # 8) Firewalls and VPN mesh
    # ------------------------------------------------------------------

    async def configure_firewalls(self) -> Dict[str, List[str]]:
        self._require_providers()
        if self.firewall_manager is None:
            wg = self.config.network.wireguard
            self.firewall_manager = FirewallManager(
                self.provider_registry,
                self.config.security.firewall,
                self.config.network.cidr,
                wg.port if wg is not None else 51820,
            )
        return await self.firewall_manager.apply(self.ctx, self.inventory.snapshot())

    async def configure_vpn_mesh(self) -> Dict[str, str]:
        """Join every deployed node to the selected VPN."""
        if self.vpn_mode is None:
            raise PhaseOrderError("VPN mode not selected - run configure_vpn first")
        if self.vpn_mode is VPNMode.none:
            return {}

        connector = self._require_connector("VPN mesh configuration")
        nodes = self.inventory.all_nodes()
        if self.vpn_mode is VPNMode.wireguard:
            assert self.wireguard_manager is not None
            self.wireguard_manager.connector = connector
            self.vpn_addresses = await self.wireguard_manager.configure_mesh(nodes)
        else:
            assert self.tailscale_manager is not None
            self.tailscale_manager.connector = connector
            self.vpn_addresses = await self.tailscale_manager.configure(nodes)
        return dict(self.vpn_addresses)

    async def verify_vpn_ready_for_rke(self) -> None:
        """
        Check that every node has an overlay address and can reach each of its
        peers over the VPN before RKE2 binds to those addresses.

        Raises:
            PhaseOrderError: If no nodes are deployed, or SSH keys are missing.
            ValidationFailedError: If a VPN is active and some node has no VPN
                address or cannot ping a peer's VPN address.
        """
        nodes = self.inventory.all_nodes()
        if not nodes:
            raise PhaseOrderError("no nodes deployed - cannot verify VPN for RKE")
        mode = self.vpn_mode or VPNMode.none
        if mode is VPNMode.none:
            return
        label = "WireGuard" if mode is VPNMode.wireguard else "Tailscale"
        missing = [n.name for n in nodes if not self.vpn_address(n)]
        if missing:
            raise ValidationFailedError(
                label, f"nodes without a VPN address: {', '.join(missing)}"
            )
        if len(nodes) < 2:
            return

        connector = self._require_connector("VPN readiness check")
        results = await asyncio.gather(
            *(self._unreachable_peers(connector, node, nodes) for node in nodes)
        )
        failures = [problem for problems in results for problem in problems]
        if failures:
            raise ValidationFailedError(
                label, f"peers unreachable over the VPN: {'; '.join(failures)}"
            )
        logger.info("VPN connectivity verified between %d nodes", len(nodes))

    async def _unreachable_peers(
        self, connector: SSHConnector, node: NodeOutput, nodes: List[NodeOutput]
    ) -> List[str]:
        peers = {
            self.vpn_address(peer): peer.name for peer in nodes if peer.name != node.name
        }
        script = (
            f"for ip in {' '.join(peers)}; do "
            'ping -c 2 -W 10 "$ip" >/dev/null 2>&1 || echo "$ip"; done'
        )
        try:
            output = await connector.run(node, ["bash", "-c", script])
        except CommandError as exc:
            return [f"{node.name} is not reachable over SSH ({exc})"]
        return [f"{node.name} -> {peers.get(ip, ip)} ({ip})" for ip in output.split()]

    # ------------------------------------------------------------------
    # 9) Cluster bootstrap and add-ons
    # ------------------------------------------------------------------

    async def install_cluster(self) -> RKE2Manager:
        if self.config.kubernetes.distribution != "rke2":
            raise ValidationFailedError(
                "Kubernetes",
                f"unsupported distribution {self.config.kubernetes.distribution!r}",
            )
        connector = self._require_connector("cluster bootstrap")
        manager = RKE2Manager(
            connector,
            self.config.kubernetes,
            self.config.network,
            channel=self.settings.rke2_channel,
            vpn_addresses=self.vpn_addresses,
        )
        creds = await manager.bootstrap(self.get_master_nodes(), self.get_worker_nodes())
        self.rke_manager = manager
        logger.info(
            "RKE2 bootstrapped: %d servers via %s",
            len(creds.control_plane_nodes),
            creds.server_ip,
        )
        await self.health_checker.check_all(self.inventory.all_nodes(), connector)
        return manager

    async def install_addons(self) -> List[str]:
        if self.rke_manager is None:
            raise PhaseOrderError("RKE manager not initialized - cannot install addons")
        if self.addons_manager is None:
            self.addons_manager = AddonsManager(self.rke_manager)
        argocd = self.config.addons.argocd
        if argocd is not None:
            await self.addons_manager.install_argocd(argocd)
        return list(self.addons_manager.installed)

    # ------------------------------------------------------------------
    # 10) Exposure
    # ------------------------------------------------------------------

    async def install_load_balancers(self) -> Optional[LoadBalancerOutput]:
        lb = self.config.load_balancer
        if lb is None:
            logger.info("No load balancer configured")
            return None
        adapter = self._adapter_for(lb.provider)
        try:
            self.load_balancer = await adapter.create_load_balancer(self.ctx, lb)
        except Exception as exc:
            raise DeploymentError(f"failed to create load balancer: {exc}", lb.name) from exc
        logger.info("Load balancer %s ready at %s", lb.name, self.load_balancer.ip)
        return self.load_balancer

    async def install_storage(self) -> List[str]:
        storage = self.config.storage
        if storage is None or not storage.classes:
            return []
        if self.rke_manager is None:
            logger.warning("Cluster not bootstrapped; skipping %d storage classes", len(storage.classes))
            return []
        if self.addons_manager is None:
            self.addons_manager = AddonsManager(self.rke_manager)
        return await self.addons_manager.install_storage_classes(storage)

    async def install_ingress(self) -> bool:
        ingress = self.config.ingress
        if ingress is None or not ingress.enabled:
            return False
        if self.rke_manager is None:
            raise PhaseOrderError("RKE manager not initialized - cannot install ingress")
        if self.ingress_manager is None:
            self.ingress_manager = IngressManager(ingress, self.rke_manager)
        return await self.ingress_manager.install()

    # ------------------------------------------------------------------
    # 11) Outputs
    # ------------------------------------------------------------------

    def _node_roles(self, node: NodeOutput) -> List[str]:
        return [node.role] if node.role else []

    def export_outputs(self) -> ClusterOutputs:
        meta = self.config.metadata
        snapshot = self.inventory.snapshot()
        nodes = {
            provider: [
                NodeSummary(
                    name=n.name,
                    provider=n.provider,
                    region=n.region,
                    size=n.size,
                    public_ip=n.public_ip,
                    private_ip=n.private_ip,
                    vpn_ip=self.vpn_address(n),
                    roles=self._node_roles(n),
                    status=self.health_checker.status(n.name),
                )
                for n in items
            ]
            for provider, items in snapshot.items()
        }
        masters = self.get_master_nodes()
        api_host = (
            (self.load_balancer.ip or self.load_balancer.hostname)
            if self.load_balancer is not None
            else (masters[0].public_ip if masters else None)
        )
        creds = self.rke_manager.credentials if self.rke_manager else None

        self.outputs = ClusterOutputs(
            cluster_name=meta.name,
            environment=meta.environment,
            version=meta.version,
            nodes=nodes,
            vpn_mode=(self.vpn_mode or VPNMode.none).value,
            api_endpoint=f"https://{api_host}:6443" if api_host else None,
            kubeconfig=creds.kubeconfig if creds else None,
            load_balancer_ip=self.load_balancer.ip if self.load_balancer else None,
        )
        self.metadata = generate_deployment_metadata(self.config, self.previous_metadata)

        self.ctx.export("cluster_name", meta.name)
        self.ctx.export("environment", meta.environment)
        self.ctx.export("version", meta.version)
        self.ctx.export(
            "nodes",
            {p: [s.model_dump() for s in items] for p, items in nodes.items()},
        )
        self.ctx.export("vpn_mode", self.outputs.vpn_mode)
        if self.outputs.api_endpoint:
            self.ctx.export("api_endpoint", self.outputs.api_endpoint)
        if self.outputs.kubeconfig:
            self.ctx.export("kubeconfig", self.outputs.kubeconfig)
        self.ctx.export("deployment_metadata", self.metadata.model_dump(mode="json"))
        self.ctx.export("config", sanitize_config_for_storage(self.config))
        if self.dns_manager is not None:
            self.dns_manager.publish(self.ctx, self.inventory.all_nodes())
        return self.outputs

    # ------------------------------------------------------------------
    # Pipeline and teardown
    # ------------------------------------------------------------------

    def phases(self) -> List[Tuple[str, Callable[[], Any]]]:
        return [
            ("validate config", lambda: self.validator.validate(self.config)),
            ("ssh keys", self.generate_ssh_keys),
            ("providers", self.initialize_providers),
            ("networking", self.create_networking),
            ("vpn selection", self.configure_vpn),
            ("dns", self.configure_dns),
            ("nodes", self.deploy_all),
            ("node distribution", self.verify_node_distribution),
            ("firewalls", self.configure_firewalls),
            ("vpn mesh", self.configure_vpn_mesh),
            ("vpn readiness", self.verify_vpn_ready_for_rke),
            ("cluster bootstrap", self.install_cluster),
            ("addons", self.install_addons),
            ("load balancers", self.install_load_balancers),
            ("storage", self.install_storage),
            ("ingress", self.install_ingress),
            ("outputs", self.export_outputs),
        ]

    async def deploy(self) -> ClusterOutputs:
        """Run every phase in order; the first failure propagates."""
        phases = self.phases()
        for index, (name, phase) in enumerate(phases, start=1):
            logger.info("Phase %d/%d: %s", index, len(phases), name)
            result = phase()
            if inspect.isawaitable(result):
                await result
        assert self.outputs is not None
        logger.info("Cluster %s deployed", self.config.metadata.name)
        return self.outputs

    async def cleanup(self) -> None:
        """Tear down every registered provider. Never raises; failures are logged."""
        for name, adapter in self.provider_registry.get_all().items():
            try:
                await adapter.cleanup(self.ctx)
                logger.info("Cleaned up provider %s", name)
            except Exception as exc:
                logger.error("Cleanup failed for provider %s: %s", name, exc)
