"""
meshkube/models/ssh.py

SSH models used to reach cluster nodes:
 - SSHConfig: connection settings for one host.
 - SSHKeyPair: the cluster-wide key pair produced by the SSH key phase.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class SSHConfig(BaseModel):
    """
    SSH configuration for connecting to a remote host.
    If host_keys is empty => no known keys => must do TOFU or fail in strict mode.
    """

    user: str
    hostname: str
    port: int = Field(default=22, ge=1, le=65535)
    private_key: str
    host_keys: Optional[List[str]] = None

    @field_validator("private_key")
    @classmethod
    def validate_private_key(cls, val: str) -> str:
        if not val.strip():
            raise ValueError("private_key must be a non-empty string")
        return val


class SSHKeyPair(BaseModel):
    """
    An OpenSSH-encoded key pair.

    Attributes:
        private_key: PEM (OpenSSH format) private key.
        public_key: Single-line `ssh-ed25519 AAAA... comment` public key.
        fingerprint: SHA256 fingerprint of the public key, base64 without padding.
    """

    private_key: str
    public_key: str
    fingerprint: str
