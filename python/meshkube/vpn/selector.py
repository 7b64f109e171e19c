"""
meshkube/vpn/selector.py

Chooses which overlay network to configure and validates its settings.

Precedence is fixed: Tailscale (present and enabled) always wins, then
WireGuard (present and enabled), otherwise no VPN. Once a mode is chosen only
that mode's settings are validated; a failure never falls back to another mode.
"""

from __future__ import annotations

import base64
import binascii
import ipaddress
import logging
from enum import Enum
from typing import List

from meshkube.errors import ValidationFailedError
from meshkube.models.cluster_config import NetworkConfig, TailscaleConfig, WireGuardConfig

logger = logging.getLogger(__name__)

WIREGUARD_KEY_LENGTH = 44


class VPNMode(str, Enum):
    wireguard = "wireguard"
    tailscale = "tailscale"
    none = "none"


def select_vpn_mode(network: NetworkConfig) -> VPNMode:
    if network.tailscale is not None and network.tailscale.enabled:
        return VPNMode.tailscale
    if network.wireguard is not None and network.wireguard.enabled:
        return VPNMode.wireguard
    return VPNMode.none


def is_valid_wireguard_key(key: str) -> bool:
    """A WireGuard key is 32 bytes, base64-encoded to 44 characters."""
    if len(key) != WIREGUARD_KEY_LENGTH:
        return False
    try:
        return len(base64.b64decode(key, validate=True)) == 32
    except (binascii.Error, ValueError):
        return False


def wireguard_problems(cfg: WireGuardConfig) -> List[str]:
    problems: List[str] = []
    if cfg.create:
        problems.append(
            "creating a WireGuard server is not supported; "
            "set server_endpoint and server_public_key of an existing server"
        )
    if not cfg.server_endpoint:
        problems.append("WireGuard server endpoint is required when using existing VPN server")
    if not cfg.server_public_key:
        problems.append(
            "WireGuard server public key is required when using existing VPN server"
        )
    elif not is_valid_wireguard_key(cfg.server_public_key):
        problems.append("WireGuard server public key must be a 44-character base64 key")
    try:
        ipaddress.ip_network(cfg.subnet, strict=False)
    except ValueError:
        problems.append(f"invalid WireGuard subnet {cfg.subnet!r}")
    return problems


def tailscale_problems(cfg: TailscaleConfig) -> List[str]:
    problems: List[str] = []
    if cfg.create:
        problems.append(
            "creating a Headscale server is not supported; "
            "set headscale_url and auth_key of an existing server"
        )
    if not cfg.headscale_url:
        problems.append("Headscale URL is required when using existing Headscale server")
    if not cfg.auth_key:
        problems.append("Tailscale auth key is required when using existing Headscale server")
    return problems


def validate_wireguard_config(cfg: WireGuardConfig) -> None:
    problems = wireguard_problems(cfg)
    if problems:
        raise ValidationFailedError("WireGuard", "; ".join(problems))


def validate_tailscale_config(cfg: TailscaleConfig) -> None:
    problems = tailscale_problems(cfg)
    if problems:
        raise ValidationFailedError("Tailscale", "; ".join(problems))


def select_and_validate(network: NetworkConfig) -> VPNMode:
    """Select the VPN mode and validate its configuration.

    Returns:
        The selected VPNMode. VPNMode.none is a valid outcome, not an error.

    Raises:
        ValidationFailedError: naming the selected mode if its settings are invalid.
    """
    mode = select_vpn_mode(network)
    if mode is VPNMode.tailscale:
        assert network.tailscale is not None
        validate_tailscale_config(network.tailscale)
    elif mode is VPNMode.wireguard:
        assert network.wireguard is not None
        validate_wireguard_config(network.wireguard)
    else:
        logger.info("No VPN enabled; nodes will communicate over provider networks")
    return mode
