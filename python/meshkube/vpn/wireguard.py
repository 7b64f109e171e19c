"""
meshkube/vpn/wireguard.py

Builds a WireGuard mesh across every deployed node:
  1) generate an X25519 key pair per node,
  2) allocate overlay addresses from the configured subnet,
  3) render /etc/wireguard/wg0.conf with one peer per other node (plus the
     existing VPN server, if one is configured),
  4) push the config over SSH and bring wg-quick@wg0 up.

Addresses and keys are tracked by the manager; NodeOutput objects owned by the
inventory are never modified.
"""

from __future__ import annotations

import asyncio
import base64
import ipaddress
import logging
import textwrap
from typing import Dict, List, Optional, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from meshkube.errors import ValidationFailedError
from meshkube.models.cluster_config import WireGuardConfig
from meshkube.models.nodes import NodeOutput
from meshkube.utils.ssh import SSHConnector

logger = logging.getLogger(__name__)

WG_CONFIG_PATH = "/etc/wireguard/wg0.conf"


def generate_wireguard_keypair() -> Tuple[str, str]:
    """Return (private_key, public_key), both base64 as `wg genkey` prints them."""
    private = X25519PrivateKey.generate()
    private_raw = private.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_raw = private.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return (
        base64.b64encode(private_raw).decode("ascii"),
        base64.b64encode(public_raw).decode("ascii"),
    )


class WireGuardManager:
    """
    Args:
        config: Validated WireGuard settings.
        connector: SSH access to the nodes. May be None when only rendering.
    """

    def __init__(self, config: WireGuardConfig, connector: Optional[SSHConnector] = None) -> None:
        self.config = config
        self.connector = connector
        self.network = ipaddress.ip_network(config.subnet, strict=False)
        self._keys: Dict[str, Tuple[str, str]] = {}
        self._addresses: Dict[str, str] = {}

    @property
    def addresses(self) -> Dict[str, str]:
        return dict(self._addresses)

    def public_key(self, node_name: str) -> Optional[str]:
        pair = self._keys.get(node_name)
        return pair[1] if pair else None

    def ensure_keys(self, nodes: List[NodeOutput]) -> None:
        for node in nodes:
            if node.name not in self._keys:
                self._keys[node.name] = generate_wireguard_keypair()

    def _parse_address(self, node: NodeOutput) -> str:
        try:
            addr = ipaddress.ip_address(node.vpn_ip)
        except ValueError:
            raise ValidationFailedError(
                "WireGuard", f"node {node.name} has invalid address {node.vpn_ip!r}"
            ) from None
        if addr not in self.network:
            raise ValidationFailedError(
                "WireGuard",
                f"node {node.name} address {node.vpn_ip} is outside {self.network}",
            )
        return str(addr)

    def allocate_addresses(self, nodes: List[NodeOutput]) -> Dict[str, str]:
        """
        Assign an overlay address to every node that does not have one yet.

        Pre-assigned `vpn_ip` values are honoured but must be unique, and the
        first host address of the subnet is reserved for the VPN server; the
        rest are handed out in node order. Nothing is recorded if any node fails.

        Raises:
            ValidationFailedError: On a malformed, out-of-subnet or already
                assigned address, or when the subnet is exhausted.
        """
        hosts = self.network.hosts()
        server_addr = str(next(hosts))
        assigned = dict(self._addresses)
        owners = {addr: name for name, addr in assigned.items()}
        owners[server_addr] = "the VPN server"

        for node in nodes:
            if node.name in assigned or not node.vpn_ip:
                continue
            addr = self._parse_address(node)
            if addr in owners:
                raise ValidationFailedError(
                    "WireGuard",
                    f"node {node.name} address {addr} already assigned to {owners[addr]}",
                )
            assigned[node.name] = addr
            owners[addr] = node.name

        for node in nodes:
            if node.name in assigned:
                continue
            for candidate in hosts:
                addr = str(candidate)
                if addr not in owners:
                    assigned[node.name] = addr
                    owners[addr] = node.name
                    break
            else:
                raise ValidationFailedError(
                    "WireGuard", f"subnet {self.network} has no free addresses left"
                )
        self._addresses = assigned
        return self.addresses

    def _endpoint(self, host: str) -> str:
        """Append the listen port unless `host` already carries one."""
        try:
            if ipaddress.ip_address(host).version == 6:
                return f"[{host}]:{self.config.port}"
        except ValueError:
            if "]:" in host or (":" in host and not host.startswith("[")):
                return host
        return f"{host}:{self.config.port}"

    def render_config(self, node: NodeOutput, nodes: List[NodeOutput]) -> str:
        """Render wg0.conf for `node`, peering with every other node in `nodes`."""
        private_key, _ = self._keys[node.name]
        address = self._addresses[node.name]
        cfg = self.config

        sections = [
            textwrap.dedent(
                f"""\
                [Interface]
                Address = {address}/{self.network.prefixlen}
                PrivateKey = {private_key}
                ListenPort = {cfg.port}
                MTU = {cfg.mtu}
                """
            )
        ]

        if cfg.server_endpoint and cfg.server_public_key:
            sections.append(
                textwrap.dedent(
                    f"""\
                    [Peer]
                    PublicKey = {cfg.server_public_key}
                    Endpoint = {self._endpoint(cfg.server_endpoint)}
                    AllowedIPs = {self.network}
                    PersistentKeepalive = {cfg.persistent_keepalive}
                    """
                )
            )

        if cfg.mesh_networking:
            for peer in nodes:
                if peer.name == node.name or not peer.ssh_host:
                    continue
                sections.append(
                    textwrap.dedent(
                        f"""\
                        [Peer]
                        PublicKey = {self._keys[peer.name][1]}
                        Endpoint = {self._endpoint(peer.ssh_host)}
                        AllowedIPs = {self._addresses[peer.name]}/32
                        PersistentKeepalive = {cfg.persistent_keepalive}
                        """
                    )
                )

        return "\n".join(sections)

    async def _configure_node(self, node: NodeOutput, nodes: List[NodeOutput]) -> None:
        assert self.connector is not None
        await self.connector.run(
            node,
            ["bash", "-c", "command -v wg >/dev/null || (sudo apt-get update -y && sudo apt-get install -y wireguard)"],
        )
        await self.connector.write_file(
            node, WG_CONFIG_PATH, self.render_config(node, nodes), mode="0600"
        )
        await self.connector.run(
            node,
            ["bash", "-c", "sudo systemctl enable wg-quick@wg0 && sudo systemctl restart wg-quick@wg0"],
        )
        logger.info("WireGuard configured on %s (%s)", node.name, self._addresses[node.name])

    async def configure_mesh(self, nodes: List[NodeOutput]) -> Dict[str, str]:
        """Configure every node and return node name -> overlay address."""
        if self.connector is None:
            raise ValidationFailedError("WireGuard", "no SSH connector available")
        self.ensure_keys(nodes)
        self.allocate_addresses(nodes)
        await asyncio.gather(*(self._configure_node(n, nodes) for n in nodes))
        return self.addresses
