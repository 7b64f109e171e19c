"""
meshkube/providers/clouds.py

Concrete Terraform-backed adapters, one per supported cloud, plus the
name -> class map used to build adapters for the enabled providers.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Type

from meshkube.models.credentials import (
    AWSApiKey,
    AzureCredentials,
    DigitalOceanToken,
    GCPServiceAccountKey,
    HetznerToken,
    LinodeToken,
)
from meshkube.providers.terraform import TerraformProviderAdapter
from meshkube.settings import MeshkubeSettings


class ProviderName(str, Enum):
    aws = "aws"
    azure = "azure"
    gcp = "gcp"
    digitalocean = "digitalocean"
    linode = "linode"
    hetzner = "hetzner"


class AWSProvider(TerraformProviderAdapter):
    name = ProviderName.aws.value
    credentials_model = AWSApiKey
    regions = ["us-east-1", "us-east-2", "us-west-2", "eu-west-1", "eu-central-1", "ap-southeast-1"]
    sizes = ["t3.medium", "t3.large", "t3.xlarge", "m6i.large", "m6i.xlarge", "c6i.xlarge"]
    default_region = "us-east-1"
    default_size = "t3.medium"
    image_aliases = {"ubuntu-22.04": "ubuntu/images/hvm-ssd/ubuntu-jammy-22.04-amd64-server-*"}


class AzureProvider(TerraformProviderAdapter):
    name = ProviderName.azure.value
    credentials_model = AzureCredentials
    regions = ["eastus", "eastus2", "westus2", "westeurope", "northeurope"]
    sizes = ["Standard_B2s", "Standard_D2s_v5", "Standard_D4s_v5", "Standard_F4s_v2"]
    default_region = "eastus"
    default_size = "Standard_D2s_v5"
    image_aliases = {"ubuntu-22.04": "Canonical:0001-com-ubuntu-server-jammy:22_04-lts-gen2:latest"}


class GCPProvider(TerraformProviderAdapter):
    name = ProviderName.gcp.value
    credentials_model = GCPServiceAccountKey
    regions = ["us-central1", "us-east1", "us-west1", "europe-west1", "asia-east1"]
    sizes = ["e2-medium", "e2-standard-2", "e2-standard-4", "n2-standard-4"]
    default_region = "us-central1"
    default_size = "e2-standard-2"
    image_aliases = {"ubuntu-22.04": "ubuntu-os-cloud/ubuntu-2204-lts"}


class DigitalOceanProvider(TerraformProviderAdapter):
    name = ProviderName.digitalocean.value
    credentials_model = DigitalOceanToken
    regions = ["nyc1", "nyc3", "sfo3", "ams3", "fra1", "lon1", "sgp1"]
    sizes = ["s-2vcpu-2gb", "s-2vcpu-4gb", "s-4vcpu-8gb", "c-4", "g-4vcpu-16gb"]
    default_region = "nyc3"
    default_size = "s-2vcpu-4gb"
    image_aliases = {"ubuntu-22.04": "ubuntu-22-04-x64"}


class LinodeProvider(TerraformProviderAdapter):
    name = ProviderName.linode.value
    credentials_model = LinodeToken
    regions = ["us-east", "us-central", "us-west", "eu-west", "eu-central", "ap-south"]
    sizes = ["g6-standard-2", "g6-standard-4", "g6-standard-6", "g6-dedicated-4"]
    default_region = "us-east"
    default_size = "g6-standard-2"
    image_aliases = {"ubuntu-22.04": "linode/ubuntu22.04"}


class HetznerProvider(TerraformProviderAdapter):
    name = ProviderName.hetzner.value
    credentials_model = HetznerToken
    regions = ["fsn1", "nbg1", "hel1", "ash", "hil"]
    sizes = ["cx22", "cx32", "cx42", "cpx31", "ccx23"]
    default_region = "fsn1"
    default_size = "cx22"
    image_aliases = {"ubuntu-22.04": "ubuntu-22.04"}


provider_adapter_map: Dict[str, Type[TerraformProviderAdapter]] = {
    ProviderName.aws.value: AWSProvider,
    ProviderName.azure.value: AzureProvider,
    ProviderName.gcp.value: GCPProvider,
    ProviderName.digitalocean.value: DigitalOceanProvider,
    ProviderName.linode.value: LinodeProvider,
    ProviderName.hetzner.value: HetznerProvider,
}


def build_provider_adapter(
    name: str, settings: Optional[MeshkubeSettings] = None
) -> TerraformProviderAdapter:
    """Instantiate the adapter registered for `name`.

    Raises:
        ValueError: If no adapter exists for `name`.
    """
    if name not in provider_adapter_map:
        raise ValueError(f"Unsupported provider: {name}")
    return provider_adapter_map[name](settings)


__all__ = [
    "ProviderName",
    "AWSProvider",
    "AzureProvider",
    "GCPProvider",
    "DigitalOceanProvider",
    "LinodeProvider",
    "HetznerProvider",
    "provider_adapter_map",
    "build_provider_adapter",
]
