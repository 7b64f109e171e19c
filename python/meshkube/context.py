"""
meshkube/context.py

The execution context passed to every provider adapter call. It names the
project and stack being deployed and collects the outputs exported during a
run, so callers can read them back after `deploy()` returns.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Optional


class DeployContext:
    """
    Attributes:
        project: Project name (used as a Terraform workspace prefix).
        stack: Stack name, e.g. "production".
        ssh_public_key: Filled in by the SSH key phase so adapters can inject it.
    """

    def __init__(self, project: str = "meshkube", stack: str = "default") -> None:
        self.project = project
        self.stack = stack
        self.ssh_public_key: Optional[str] = None
        self._outputs: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def export(self, key: str, value: Any) -> None:
        """Record an output value; a later export of the same key replaces it."""
        with self._lock:
            self._outputs[key] = value

    @property
    def outputs(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._outputs)

    def workspace_name(self, *parts: str) -> str:
        """Builds a Terraform-safe workspace name from project, stack and parts."""
        raw = "-".join([self.project, self.stack, *parts])
        return "".join(c if c.isalnum() or c in "-_" else "-" for c in raw)
