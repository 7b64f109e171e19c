"""
meshkube/managers/addons.py

Cluster add-ons applied after bootstrap:
  - ArgoCD, from its upstream install manifest
  - StorageClass objects rendered from the storage config
"""

from __future__ import annotations

import logging
from typing import List

import yaml

from meshkube.deployment.rke2 import RKE2Manager
from meshkube.models.cluster_config import ArgoCDConfig, StorageConfig

logger = logging.getLogger(__name__)

ARGOCD_MANIFEST = "https://raw.githubusercontent.com/argoproj/argo-cd/{version}/manifests/install.yaml"


def render_storage_classes(config: StorageConfig) -> str:
    """Render every configured StorageClass as one multi-document YAML string."""
    docs = []
    for sc in config.classes:
        doc = {
            "apiVersion": "storage.k8s.io/v1",
            "kind": "StorageClass",
            "metadata": {"name": sc.name},
            "provisioner": sc.provisioner,
            "reclaimPolicy": sc.reclaim_policy,
        }
        if sc.default:
            doc["metadata"]["annotations"] = {
                "storageclass.kubernetes.io/is-default-class": "true"
            }
        if sc.parameters:
            doc["parameters"] = dict(sc.parameters)
        docs.append(doc)
    return yaml.safe_dump_all(docs, sort_keys=False)


class AddonsManager:
    def __init__(self, cluster: RKE2Manager) -> None:
        self.cluster = cluster
        self.installed: List[str] = []

    async def install_argocd(self, config: ArgoCDConfig) -> bool:
        if not config.enabled:
            return False
        await self.cluster.ensure_namespace(config.namespace)
        await self.cluster.apply_url(
            ARGOCD_MANIFEST.format(version=config.version), namespace=config.namespace
        )
        self.installed.append("argocd")
        logger.info("ArgoCD %s installed in namespace %s", config.version, config.namespace)
        return True

    async def install_storage_classes(self, config: StorageConfig) -> List[str]:
        if not config.classes:
            return []
        await self.cluster.apply_manifest(render_storage_classes(config))
        names = [sc.name for sc in config.classes]
        self.installed.extend(f"storageclass/{n}" for n in names)
        logger.info("Storage classes applied: %s", ", ".join(names))
        return names
