"""
meshkube/managers/ssh_keys.py

Produces the cluster-wide SSH key pair: a fresh ed25519 pair, or the pair
derived from a private key supplied in the security config.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from meshkube.errors import ValidationFailedError
from meshkube.models.cluster_config import SSHKeyConfig
from meshkube.models.ssh import SSHKeyPair

logger = logging.getLogger(__name__)


def _fingerprint(public_key: str) -> str:
    blob = base64.b64decode(public_key.split()[1])
    digest = hashlib.sha256(blob).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


class SSHKeyManager:
    def __init__(self, config: SSHKeyConfig, comment: str = "meshkube") -> None:
        self.config = config
        self.comment = comment
        self.key_pair: Optional[SSHKeyPair] = None

    def generate(self) -> SSHKeyPair:
        """Generate or derive the key pair. Subsequent calls return the same pair."""
        if self.key_pair is not None:
            return self.key_pair

        if self.config.private_key:
            private = self._load_private_key(self.config.private_key)
            logger.info("Using supplied SSH private key")
        else:
            private = Ed25519PrivateKey.generate()
            logger.info("Generated new ed25519 SSH key pair")

        private_pem = private.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.OpenSSH,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
        public = private.public_key().public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH,
        ).decode("ascii")
        public_line = f"{public} {self.comment}"

        if self.config.public_key and self.config.public_key.split()[:2] != public.split()[:2]:
            raise ValidationFailedError(
                "SSH", "supplied public key does not match the supplied private key"
            )

        self.key_pair = SSHKeyPair(
            private_key=private_pem,
            public_key=public_line,
            fingerprint=_fingerprint(public_line),
        )
        return self.key_pair

    @staticmethod
    def _load_private_key(text: str):
        try:
            return serialization.load_ssh_private_key(text.encode("utf-8"), password=None)
        except ValueError:
            try:
                return serialization.load_pem_private_key(text.encode("utf-8"), password=None)
            except (ValueError, TypeError) as exc:
                raise ValidationFailedError("SSH", f"unreadable private key: {exc}") from exc
