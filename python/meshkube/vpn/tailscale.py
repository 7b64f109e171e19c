"""
meshkube/vpn/tailscale.py

Joins every node to a Headscale-controlled tailnet and records the address
each node was given.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from meshkube.errors import ValidationFailedError
from meshkube.models.cluster_config import TailscaleConfig
from meshkube.models.nodes import NodeOutput
from meshkube.utils.ssh import SSHConnector

logger = logging.getLogger(__name__)

INSTALL_SCRIPT = "command -v tailscale >/dev/null || curl -fsSL https://tailscale.com/install.sh | sh"


class TailscaleManager:
    def __init__(self, config: TailscaleConfig, connector: Optional[SSHConnector] = None) -> None:
        self.config = config
        self.connector = connector
        self._addresses: Dict[str, str] = {}

    @property
    def addresses(self) -> Dict[str, str]:
        return dict(self._addresses)

    def up_command(self, node: NodeOutput) -> List[str]:
        if not self.config.headscale_url or not self.config.auth_key:
            raise ValidationFailedError(
                "Tailscale", "Headscale URL and auth key are required to join nodes"
            )
        cmd = [
            "sudo",
            "tailscale",
            "up",
            "--login-server",
            self.config.headscale_url,
            "--authkey",
            self.config.auth_key,
            "--hostname",
            node.name,
        ]
        if self.config.accept_routes:
            cmd.append("--accept-routes")
        return cmd

    async def _join(self, node: NodeOutput) -> None:
        assert self.connector is not None
        await self.connector.run(node, ["bash", "-c", INSTALL_SCRIPT])
        await self.connector.run(node, self.up_command(node), sensitive=True)
        out = await self.connector.run(node, ["tailscale", "ip", "-4"])
        address = out.strip().splitlines()[0] if out.strip() else ""
        if not address:
            raise ValidationFailedError("Tailscale", f"node {node.name} got no tailnet address")
        self._addresses[node.name] = address
        logger.info("Tailscale joined on %s (%s)", node.name, address)

    async def configure(self, nodes: List[NodeOutput]) -> Dict[str, str]:
        if self.connector is None:
            raise ValidationFailedError("Tailscale", "no SSH connector available")
        await asyncio.gather(*(self._join(n) for n in nodes))
        return self.addresses
