"""
meshkube/managers/network.py

Creates the base network in every registered provider.
"""

from __future__ import annotations

import logging
from typing import Dict

from meshkube.context import DeployContext
from meshkube.errors import DeploymentError
from meshkube.models.cluster_config import NetworkConfig
from meshkube.models.nodes import NetworkOutput
from meshkube.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class NetworkManager:
    def __init__(self, registry: ProviderRegistry, config: NetworkConfig) -> None:
        self.registry = registry
        self.config = config
        self.networks: Dict[str, NetworkOutput] = {}

    async def create_networks(self, ctx: DeployContext) -> Dict[str, NetworkOutput]:
        """Create the network once per provider; providers already done are skipped."""
        for name, adapter in sorted(self.registry.get_all().items()):
            if name in self.networks:
                continue
            try:
                self.networks[name] = await adapter.create_network(ctx, self.config)
            except Exception as exc:
                raise DeploymentError(
                    f"failed to create network for provider {name}: {exc}", name
                ) from exc
            logger.info("Network ready for %s (%s)", name, self.config.cidr)
        return dict(self.networks)
