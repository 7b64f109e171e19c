"""
meshkube/errors.py

Exception taxonomy for the orchestration engine. Every domain error derives
from MeshkubeError so callers can catch the whole family at once, while the
message of each error is fixed (tests and downstream tooling match on it).

Adapter failures are not part of this hierarchy: whatever a
provider adapter raises is either propagated as-is or wrapped with the name of
the entity being deployed (see DeploymentError).
"""

from __future__ import annotations

from typing import Optional


class MeshkubeError(Exception):
    """Base class for all orchestration errors."""


class ProviderNotFoundError(MeshkubeError):
    """Raised when a provider name has no adapter in the registry.

    Attributes:
        provider: The provider name that was looked up.
    """

    def __init__(self, provider: str) -> None:
        super().__init__(f"provider {provider} not found")
        self.provider = provider


class NodeNotFoundError(MeshkubeError):
    """Raised when a node (or a provider's node list) is absent from the inventory."""

    def __init__(self, message: str) -> None:
        super().__init__(message)

    @classmethod
    def for_name(cls, name: str) -> NodeNotFoundError:
        return cls(f"node {name} not found")

    @classmethod
    def for_provider(cls, provider: str) -> NodeNotFoundError:
        return cls(f"no nodes found for provider {provider}")


class NoProvidersEnabledError(MeshkubeError):
    """Raised when provider initialization finds nothing to initialize."""

    def __init__(self, message: str = "no cloud providers enabled") -> None:
        super().__init__(message)


class ProviderInitializationError(MeshkubeError):
    """Wraps an adapter's own initialize() failure with the provider name."""

    def __init__(self, provider: str, cause: BaseException) -> None:
        super().__init__(f"failed to initialize provider {provider}: {cause}")
        self.provider = provider


class ValidationFailedError(MeshkubeError):
    """A subsystem configuration (VPN, firewall, cluster document) failed its checks.

    Attributes:
        subsystem: Human-readable subsystem name embedded in the message,
            e.g. "WireGuard" or "Tailscale".
    """

    def __init__(self, subsystem: str, detail: str) -> None:
        super().__init__(f"{subsystem} validation failed: {detail}")
        self.subsystem = subsystem
        self.detail = detail


class DistributionMismatchError(MeshkubeError):
    """Raised by the distribution verifier when counts differ from declared pools.

    Attributes:
        kind: Which invariant failed ("total", "master" or "worker").
        expected: Expected count.
        actual: Observed count.
    """

    def __init__(self, kind: str, expected: int, actual: int) -> None:
        if kind == "total":
            message = f"expected {expected} nodes, got {actual}"
        else:
            message = f"expected {expected} {kind} nodes, got {actual}"
        super().__init__(message)
        self.kind = kind
        self.expected = expected
        self.actual = actual


class DeploymentError(MeshkubeError):
    """Wraps a failure with the declared entity that was being deployed.

    Examples of messages:
        "failed to deploy node web-1: quota exceeded"
        "failed to deploy node pool workers: quota exceeded"
        "failed to create load balancer: timeout"
    """

    def __init__(self, message: str, entity: Optional[str] = None) -> None:
        super().__init__(message)
        self.entity = entity


class PhaseOrderError(MeshkubeError):
    """Raised when a phase runs before the phase it depends on."""


class CommandError(Exception):
    """Represents a failure when executing a local or remote shell command.

    Attributes:
        return_code: The exit code if available.
    """

    def __init__(self, message: str, return_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.return_code = return_code


__all__ = [
    "MeshkubeError",
    "ProviderNotFoundError",
    "NodeNotFoundError",
    "NoProvidersEnabledError",
    "ProviderInitializationError",
    "ValidationFailedError",
    "DistributionMismatchError",
    "DeploymentError",
    "PhaseOrderError",
    "CommandError",
]
