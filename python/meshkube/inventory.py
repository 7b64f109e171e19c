"""
meshkube/inventory.py

The node inventory: every node materialized during a run, grouped by provider
and kept in insertion order per provider.

All reads and writes go through one lock. Queries return fresh lists built
under the lock, so a caller iterating a result never observes a concurrent
append. There is no removal operation.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Mapping

from meshkube.errors import NodeNotFoundError
from meshkube.models.nodes import NodeOutput


class NodeInventory:
    def __init__(self) -> None:
        self._nodes: Dict[str, List[NodeOutput]] = {}
        self._lock = threading.Lock()

    def add(self, provider: str, node: NodeOutput) -> None:
        with self._lock:
            self._nodes.setdefault(provider, []).append(node)

    def extend(self, provider: str, nodes: Iterable[NodeOutput]) -> int:
        """Append `nodes` in order under a single lock hold; returns how many."""
        batch = list(nodes)
        if not batch:
            return 0
        with self._lock:
            self._nodes.setdefault(provider, []).extend(batch)
        return len(batch)

    def seed(self, nodes: Mapping[str, Iterable[NodeOutput]]) -> None:
        """Replace the whole inventory. Used by tests to set up prior state."""
        with self._lock:
            self._nodes = {provider: list(items) for provider, items in nodes.items()}

    def snapshot(self) -> Dict[str, List[NodeOutput]]:
        with self._lock:
            return {provider: list(items) for provider, items in self._nodes.items()}

    def all_nodes(self) -> List[NodeOutput]:
        with self._lock:
            return [node for items in self._nodes.values() for node in items]

    def count(self, provider: str) -> int:
        with self._lock:
            return len(self._nodes.get(provider, []))

    def __len__(self) -> int:
        with self._lock:
            return sum(len(items) for items in self._nodes.values())

    def find(self, name: str) -> NodeOutput:
        """Exact, case-sensitive lookup by node name."""
        for node in self.all_nodes():
            if node.name == name:
                return node
        raise NodeNotFoundError.for_name(name)

    def by_provider(self, provider: str) -> List[NodeOutput]:
        with self._lock:
            items = self._nodes.get(provider)
            if not items:
                raise NodeNotFoundError.for_provider(provider)
            return list(items)

    def masters(self) -> List[NodeOutput]:
        return [node for node in self.all_nodes() if node.is_master]

    def workers(self) -> List[NodeOutput]:
        return [node for node in self.all_nodes() if node.is_worker]
