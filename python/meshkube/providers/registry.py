"""
meshkube/providers/registry.py

Name -> adapter lookup table shared by every orchestrator phase.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Tuple

from meshkube.providers.base import ProviderAdapter


class ProviderRegistry:
    """
    A thread-safe registry of provider adapters.

    `register` overwrites any adapter already stored under the same name, which
    is how test doubles replace real adapters.
    """

    def __init__(self) -> None:
        self._providers: Dict[str, ProviderAdapter] = {}
        self._lock = threading.Lock()

    def register(self, name: str, adapter: ProviderAdapter) -> None:
        with self._lock:
            self._providers[name] = adapter

    def get(self, name: str) -> Tuple[Optional[ProviderAdapter], bool]:
        """Return `(adapter, True)` if registered, otherwise `(None, False)`."""
        with self._lock:
            adapter = self._providers.get(name)
        return adapter, adapter is not None

    def get_all(self) -> Dict[str, ProviderAdapter]:
        """Snapshot of every registered adapter keyed by name."""
        with self._lock:
            return dict(self._providers)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._providers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._providers
