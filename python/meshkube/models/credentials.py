"""
meshkube/models/credentials.py

Pydantic models for provider credentials, one per supported backend. Each model
exposes `to_env_dict()`, which yields the environment variables the matching
Terraform provider reads.
"""

import json
from typing import Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, Field


class AWSApiKey(BaseModel):
    access_key_id: str
    secret_access_key: str
    session_token: Optional[str] = None

    def to_env_dict(self) -> Dict[str, str]:
        env = {
            "AWS_ACCESS_KEY_ID": self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
        }
        if self.session_token:
            env["AWS_SESSION_TOKEN"] = self.session_token
        return env


class AzureCredentials(BaseModel):
    """Pydantic model for AzureCredentials."""

    client_id: str = Field(..., description="Azure Client ID")
    client_secret: str = Field(..., description="Azure Client Secret")
    tenant_id: str = Field(..., description="Azure Tenant ID")
    subscription_id: str = Field(..., description="Azure Subscription ID")

    def to_env_dict(self) -> Dict[str, str]:
        """Converts Azure credentials to environment variables.

        Returns:
            Dict[str, str]: A dictionary containing ARM_* environment variables.
        """
        return {
            "ARM_CLIENT_ID": self.client_id,
            "ARM_CLIENT_SECRET": self.client_secret,
            "ARM_TENANT_ID": self.tenant_id,
            "ARM_SUBSCRIPTION_ID": self.subscription_id,
        }


class GCPServiceAccountKey(BaseModel):
    """Service account JSON key, as downloaded from the GCP console."""

    type: Literal["service_account"]
    project_id: str
    private_key_id: str
    private_key: str
    client_email: str
    client_id: str
    auth_uri: str = "https://accounts.google.com/o/oauth2/auth"
    token_uri: str = "https://oauth2.googleapis.com/token"
    auth_provider_x509_cert_url: Optional[str] = None
    client_x509_cert_url: Optional[str] = None
    universe_domain: str = "googleapis.com"

    def to_env_dict(self) -> Dict[str, str]:
        return {
            "GOOGLE_CREDENTIALS": json.dumps(self.model_dump(exclude_none=True)),
            "GOOGLE_PROJECT": self.project_id,
        }


class DigitalOceanToken(BaseModel):
    token: str = Field(..., min_length=1)

    def to_env_dict(self) -> Dict[str, str]:
        return {"DIGITALOCEAN_TOKEN": self.token}


class LinodeToken(BaseModel):
    token: str = Field(..., min_length=1)

    def to_env_dict(self) -> Dict[str, str]:
        return {"LINODE_TOKEN": self.token}


class HetznerToken(BaseModel):
    token: str = Field(..., min_length=1)

    def to_env_dict(self) -> Dict[str, str]:
        return {"HCLOUD_TOKEN": self.token}


ProviderCredentials = Union[
    AWSApiKey,
    AzureCredentials,
    GCPServiceAccountKey,
    DigitalOceanToken,
    LinodeToken,
    HetznerToken,
]

credentials_model_map: Dict[str, Type[BaseModel]] = {
    "aws": AWSApiKey,
    "azure": AzureCredentials,
    "gcp": GCPServiceAccountKey,
    "digitalocean": DigitalOceanToken,
    "linode": LinodeToken,
    "hetzner": HetznerToken,
}

# Placeholders written in place of secrets when a config is exported.
credential_placeholders: Dict[str, Dict[str, str]] = {
    "aws": {
        "access_key_id": "${AWS_ACCESS_KEY_ID}",
        "secret_access_key": "${AWS_SECRET_ACCESS_KEY}",
        "session_token": "${AWS_SESSION_TOKEN}",
    },
    "azure": {
        "client_id": "${ARM_CLIENT_ID}",
        "client_secret": "${ARM_CLIENT_SECRET}",
        "tenant_id": "${ARM_TENANT_ID}",
        "subscription_id": "${ARM_SUBSCRIPTION_ID}",
    },
    "gcp": {"private_key": "${GCP_CREDENTIALS}", "private_key_id": "${GCP_CREDENTIALS}"},
    "digitalocean": {"token": "${DIGITALOCEAN_TOKEN}"},
    "linode": {"token": "${LINODE_TOKEN}"},
    "hetzner": {"token": "${HCLOUD_TOKEN}"},
}


__all__ = [
    "AWSApiKey",
    "AzureCredentials",
    "GCPServiceAccountKey",
    "DigitalOceanToken",
    "LinodeToken",
    "HetznerToken",
    "ProviderCredentials",
    "credentials_model_map",
    "credential_placeholders",
]
