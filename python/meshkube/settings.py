# meshkube/settings.py

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class MeshkubeSettings(BaseSettings):
    """
    Runtime knobs for the orchestrator, independent of any cluster document.
    Each field maps to an environment variable prefixed with `MESHKUBE_`,
    e.g. `MESHKUBE_TERRAFORM_ROOTS=/opt/meshkube/terraform`.
    """

    model_config = SettingsConfigDict(env_prefix="MESHKUBE_")

    log_level: str = "INFO"
    terraform_binary: str = "terraform"
    terraform_roots: str = "/meshkube/terraform/roots"
    ssh_user: str = "ubuntu"
    ssh_connect_retries: int = 30
    rke2_channel: str = "stable"
    command_retries: int = 3
    command_retry_delay: float = 1.0
    ephemeral_dir: Optional[str] = None
