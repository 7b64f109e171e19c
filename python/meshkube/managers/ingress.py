"""
meshkube/managers/ingress.py

Installs the ingress-nginx controller through kubectl on the bootstrapped cluster.
"""

from __future__ import annotations

import logging

from meshkube.deployment.rke2 import RKE2Manager
from meshkube.models.cluster_config import IngressConfig

logger = logging.getLogger(__name__)

INGRESS_NGINX_MANIFEST = (
    "https://raw.githubusercontent.com/kubernetes/ingress-nginx/"
    "controller-{version}/deploy/static/provider/baremetal/deploy.yaml"
)


class IngressManager:
    def __init__(self, config: IngressConfig, cluster: RKE2Manager) -> None:
        self.config = config
        self.cluster = cluster
        self.installed = False

    def manifest_url(self) -> str:
        return INGRESS_NGINX_MANIFEST.format(version=self.config.version)

    async def install(self) -> bool:
        """Returns True if the controller was applied, False if skipped."""
        if not self.config.enabled:
            return False
        if self.config.controller != "nginx":
            raise ValueError(f"unsupported ingress controller: {self.config.controller}")
        await self.cluster.apply_url(self.manifest_url())
        self.installed = True
        logger.info("ingress-nginx %s installed", self.config.version)
        return True
