"""
meshkube/health.py

Tracks per-node health. Status values are plain strings:
"unknown", "ready", "not-ready" and "unreachable".
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel

from meshkube.errors import CommandError
from meshkube.models.nodes import NodeOutput
from meshkube.utils.ssh import SSHConnector

logger = logging.getLogger(__name__)


class NodeHealth(BaseModel):
    name: str
    status: str = "unknown"
    checked_at: Optional[datetime] = None
    message: str = ""


class HealthChecker:
    def __init__(self) -> None:
        self._status: Dict[str, NodeHealth] = {}
        self._lock = threading.Lock()

    def mark(self, name: str, status: str, message: str = "") -> None:
        with self._lock:
            self._status[name] = NodeHealth(
                name=name,
                status=status,
                checked_at=datetime.now(timezone.utc),
                message=message,
            )

    def status(self, name: str) -> str:
        with self._lock:
            entry = self._status.get(name)
        return entry.status if entry else "unknown"

    def snapshot(self) -> Dict[str, NodeHealth]:
        with self._lock:
            return dict(self._status)

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for entry in self.snapshot().values():
            counts[entry.status] = counts.get(entry.status, 0) + 1
        return counts

    async def check_node(self, node: NodeOutput, connector: SSHConnector) -> str:
        """Check that the node's RKE2 service is active over SSH."""
        service = "rke2-server" if node.is_master else "rke2-agent"
        try:
            out = await connector.run(
                node, ["systemctl", "is-active", service], retries=1, successful_return_codes=(0, 3)
            )
        except CommandError as exc:
            self.mark(node.name, "unreachable", str(exc))
            return "unreachable"
        status = "ready" if out.strip() == "active" else "not-ready"
        self.mark(node.name, status, f"{service}: {out.strip()}")
        return status

    async def check_all(self, nodes: List[NodeOutput], connector: SSHConnector) -> Dict[str, str]:
        results = await asyncio.gather(*(self.check_node(n, connector) for n in nodes))
        statuses = {n.name: s for n, s in zip(nodes, results)}
        unhealthy = [name for name, s in statuses.items() if s != "ready"]
        if unhealthy:
            logger.warning("Unhealthy nodes: %s", ", ".join(unhealthy))
        return statuses
