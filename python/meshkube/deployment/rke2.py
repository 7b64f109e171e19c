"""
meshkube/deployment/rke2.py

Bootstraps RKE2 on nodes that are already deployed and reachable over SSH.
Every step is idempotent, so re-running a failed pipeline picks up where the
previous run stopped:

  1) Prepare every node concurrently (swap off, kernel modules, sysctl).
  2) The first master writes its config.yaml and installs rke2-server.
  3) Its node token is read back (retried until the file exists).
  4) Remaining masters join one at a time; RKE2 expects servers to join serially.
  5) Workers join concurrently as rke2-agent.
  6) The admin kubeconfig is fetched and rewritten to the bootstrap address.

Nodes are addressed by their overlay address when a VPN assigned one, so the
cluster's internal traffic rides the mesh.

Once bootstrapped, the manager is also the kubectl entry point used by the
add-on, ingress and storage phases.
"""

from __future__ import annotations

import asyncio
import logging
import textwrap
from typing import Dict, List, Optional

from meshkube.errors import CommandError, PhaseOrderError
from meshkube.models.cluster_config import KubernetesConfig, NetworkConfig
from meshkube.models.nodes import NodeOutput
from meshkube.models.rke2 import RKE2Credentials, RKE2NodeConfig
from meshkube.utils.async_retry import async_retry
from meshkube.utils.ssh import SSHConnector

logger = logging.getLogger(__name__)

RKE2_CONFIG_PATH = "/etc/rancher/rke2/config.yaml"
RKE2_KUBECONFIG_PATH = "/etc/rancher/rke2/rke2.yaml"
RKE2_TOKEN_PATH = "/var/lib/rancher/rke2/server/node-token"
RKE2_KUBECTL = "/var/lib/rancher/rke2/bin/kubectl"
RKE2_SUPERVISOR_PORT = 9345


class RKE2Manager:
    """
    Args:
        connector: SSH access to the nodes.
        kubernetes: Cluster bootstrap settings.
        network: Used for pod/service CIDRs.
        channel: Default install channel when kubernetes.channel is unset.
        vpn_addresses: node name -> overlay address assigned by the VPN phase.
    """

    def __init__(
        self,
        connector: SSHConnector,
        kubernetes: KubernetesConfig,
        network: NetworkConfig,
        channel: str = "stable",
        vpn_addresses: Optional[Dict[str, str]] = None,
    ) -> None:
        self.connector = connector
        self.kubernetes = kubernetes
        self.network = network
        self.channel = kubernetes.channel or channel
        self.vpn_addresses = dict(vpn_addresses or {})
        self.credentials: Optional[RKE2Credentials] = None
        self._bootstrap_node: Optional[NodeOutput] = None

    @property
    def bootstrapped(self) -> bool:
        return self.credentials is not None

    def node_address(self, node: NodeOutput) -> str:
        address = self.vpn_addresses.get(node.name) or node.vpn_ip or node.private_ip or node.public_ip
        if not address:
            raise CommandError(f"node {node.name} has no usable address")
        return address

    def _install_env(self, node_type: str) -> str:
        env = f"INSTALL_RKE2_TYPE={node_type}"
        if self.kubernetes.version:
            env += f" INSTALL_RKE2_VERSION={self.kubernetes.version}"
        else:
            env += f" INSTALL_RKE2_CHANNEL={self.channel}"
        return env

    def render_node_config(
        self,
        node: NodeOutput,
        server_ip: Optional[str] = None,
        token: Optional[str] = None,
        is_server: bool = True,
    ) -> str:
        address = self.node_address(node)
        cfg = RKE2NodeConfig(
            server=f"https://{server_ip}:{RKE2_SUPERVISOR_PORT}" if server_ip else None,
            token=token,
            node_ip=address,
            node_external_ip=node.public_ip,
            node_name=node.name,
            node_label=[f"meshkube.io/provider={node.provider}"],
        )
        if is_server:
            cfg.tls_san = [address] + [s for s in [node.public_ip] if s] + list(self.kubernetes.tls_san)
            cfg.cluster_cidr = self.kubernetes.cluster_cidr or self.network.pod_cidr
            cfg.service_cidr = self.kubernetes.service_cidr or self.network.service_cidr
        return cfg.to_yaml()

    # ------------------------------------------------------------------
    # Node preparation
    # ------------------------------------------------------------------

    async def _prepare_node(self, node: NodeOutput) -> None:
        """Disable swap, load kernel modules and configure sysctl."""
        await self.connector.run(node, ["sudo", "swapoff", "-a"])
        await self.connector.run(
            node, ["bash", "-c", r"sudo sed -i.bak '/\sswap\s/s/^/#/g' /etc/fstab"]
        )
        for mod in ["overlay", "br_netfilter"]:
            await self.connector.run(node, ["sudo", "modprobe", mod])
        await self.connector.write_file(
            node, "/etc/modules-load.d/rke2.conf", "overlay\nbr_netfilter\n"
        )
        await self.connector.write_file(
            node,
            "/etc/sysctl.d/99-rke2.conf",
            textwrap.dedent(
                """\
                net.ipv4.ip_forward=1
                net.bridge.bridge-nf-call-iptables=1
                net.bridge.bridge-nf-call-ip6tables=1
                """
            ),
        )
        await self.connector.run(node, ["sudo", "sysctl", "--system"])

    async def _install(self, node: NodeOutput, node_type: str, config_yaml: str) -> None:
        """Write config.yaml first so the service starts with it, then install."""
        service = f"rke2-{node_type}"
        await self.connector.write_file(node, RKE2_CONFIG_PATH, config_yaml, mode="0600")
        try:
            await self.connector.run(node, ["which", "rke2"], retries=1)
        except CommandError:
            script = textwrap.dedent(
                f"""\
                set -eux
                curl -sfL https://get.rke2.io | sudo {self._install_env(node_type)} sh -
                """
            )
            await self.connector.run(node, ["bash", "-c", script])
        await self.connector.run(node, ["sudo", "systemctl", "enable", service])
        await self.connector.run(node, ["sudo", "systemctl", "restart", service])
        logger.info("RKE2 %s running on %s", node_type, node.name)

    @async_retry(retries=30, delay=5.0)
    async def _get_node_token(self, node: NodeOutput) -> str:
        out = await self.connector.run(node, ["sudo", "cat", RKE2_TOKEN_PATH], retries=1)
        token_val = out.strip()
        if not token_val:
            raise RuntimeError("Empty node-token from server node.")
        return token_val

    @async_retry(retries=30, delay=5.0)
    async def _fetch_kubeconfig(self, node: NodeOutput, server_ip: str) -> str:
        raw = await self.connector.run(node, ["sudo", "cat", RKE2_KUBECONFIG_PATH], retries=1)
        if not raw.strip():
            raise RuntimeError("Empty kubeconfig on server node.")
        return raw.replace("https://127.0.0.1:6443", f"https://{server_ip}:6443")

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def bootstrap(
        self, masters: List[NodeOutput], workers: List[NodeOutput]
    ) -> RKE2Credentials:
        """Install RKE2 across the cluster and return its credentials.

        Raises:
            CommandError: If there is no master or any remote step fails.
        """
        if not masters:
            raise CommandError("cannot bootstrap RKE2 without a master node")

        await asyncio.gather(*(self._prepare_node(n) for n in masters + workers))

        first = masters[0]
        server_ip = self.node_address(first)
        await self._install(first, "server", self.render_node_config(first))
        token = await self._get_node_token(first)

        for node in masters[1:]:
            await self._install(
                node, "server", self.render_node_config(node, server_ip, token)
            )

        await asyncio.gather(
            *(
                self._install(
                    n, "agent", self.render_node_config(n, server_ip, token, is_server=False)
                )
                for n in workers
            )
        )

        kubeconfig = await self._fetch_kubeconfig(first, server_ip)
        self._bootstrap_node = first
        self.credentials = RKE2Credentials(
            kubeconfig=kubeconfig,
            join_token=token,
            server_ip=server_ip,
            control_plane_nodes=[n.name for n in masters],
            node_roles={
                **{n.name: "server" for n in masters},
                **{n.name: "agent" for n in workers},
            },
        )
        return self.credentials

    # ------------------------------------------------------------------
    # kubectl on the bootstrap node
    # ------------------------------------------------------------------

    async def kubectl(self, args: List[str], input_data: Optional[str] = None) -> str:
        if self._bootstrap_node is None:
            raise PhaseOrderError("RKE2 cluster has not been bootstrapped")
        cmd = ["sudo", RKE2_KUBECTL, "--kubeconfig", RKE2_KUBECONFIG_PATH] + args
        return await self.connector.run(self._bootstrap_node, cmd, input_data=input_data)

    async def apply_manifest(self, manifest: str, namespace: Optional[str] = None) -> str:
        args = ["apply", "-f", "-"]
        if namespace:
            args += ["-n", namespace]
        return await self.kubectl(args, input_data=manifest)

    async def apply_url(self, url: str, namespace: Optional[str] = None) -> str:
        args = ["apply", "-f", url]
        if namespace:
            args += ["-n", namespace]
        return await self.kubectl(args)

    async def ensure_namespace(self, namespace: str) -> None:
        manifest = f"apiVersion: v1\nkind: Namespace\nmetadata:\n  name: {namespace}\n"
        await self.apply_manifest(manifest)
