"""
meshkube/utils/terraform.py

Thin async wrapper over the terraform CLI for one root module directory.

Every resource an adapter creates gets its own workspace, so state for each
node, pool, network or load balancer is isolated and can be destroyed
independently. Workspaces are selected through the TF_WORKSPACE environment
variable, which lets commands for different workspaces run concurrently
against the same root; only `init` and workspace creation are serialized.

Variables are passed through an ephemeral .auto.tfvars.json file, so
credentials embedded in them never land on disk outside /dev/shm.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel

from meshkube.errors import CommandError
from meshkube.utils.async_command_runner import run_command
from meshkube.utils.ephemeral_file import ephemeral_tfvars

logger = logging.getLogger(__name__)


class TerraformOutputValue(BaseModel):
    """One entry of `terraform output -json`."""

    sensitive: bool = False
    value: Any = None
    type: Union[str, List[Any], None] = None


def _terraform_error_parser(stderr: str) -> Optional[str]:
    """Return the first `Error:` line of terraform's stderr, if there is one.

    Terraform prints a one-line summary per diagnostic, which is specific
    enough to act on and does not echo variable values.
    """
    for line in stderr.splitlines():
        stripped = line.strip().lstrip("│").strip()
        if stripped.startswith("Error:"):
            return f"terraform {stripped}"
    return None


class TerraformRunner:
    """
    Runs terraform commands against a single root module.

    Args:
        root_dir: Directory containing the root module (*.tf files).
        env: Extra environment variables, typically provider credentials.
        binary: terraform executable name or path.
        retries: Attempts per command.
        retry_delay: Seconds between attempts.
    """

    def __init__(
        self,
        root_dir: str,
        env: Optional[Dict[str, str]] = None,
        *,
        binary: str = "terraform",
        retries: int = 3,
        retry_delay: float = 1.0,
        ephemeral_dir: Optional[str] = None,
    ) -> None:
        self.root_dir = root_dir
        self.env = dict(env or {})
        self.binary = binary
        self.retries = retries
        self.retry_delay = retry_delay
        self.ephemeral_dir = ephemeral_dir
        self._initialized = False
        self._workspaces: Set[str] = set()
        self._lock = asyncio.Lock()

    def _make_base_command(self, action: List[str]) -> List[str]:
        base = [self.binary, f"-chdir={self.root_dir}"] + action
        if action[0] == "workspace":
            return base
        base.append("-no-color")
        if action[0] in ("apply", "destroy"):
            base += ["-auto-approve", "-input=false"]
        elif action[0] == "init":
            base += ["-input=false"]
        elif action[0] == "output":
            base += ["-json"]
        return base

    async def _run(
        self,
        action: List[str],
        workspace: Optional[str] = None,
        extra_args: Optional[List[str]] = None,
    ) -> str:
        env = dict(self.env)
        if workspace is not None:
            env["TF_WORKSPACE"] = workspace
        cmd = self._make_base_command(action) + (extra_args or [])
        return await run_command(
            cmd,
            sensitive=True,
            env=env,
            retries=self.retries,
            retry_delay=self.retry_delay,
            suppress_env_vars=["TF_WORKSPACE"] if workspace is None else None,
            error_parser=_terraform_error_parser,
        )

    async def ensure_initialized(self) -> None:
        if not os.path.isdir(self.root_dir):
            raise CommandError(f"Terraform directory not found: {self.root_dir}")
        async with self._lock:
            if self._initialized:
                return
            logger.debug("terraform init in %s", self.root_dir)
            await self._run(["init"])
            self._initialized = True

    async def ensure_workspace(self, workspace: str) -> None:
        await self.ensure_initialized()
        async with self._lock:
            if workspace in self._workspaces:
                return
            await self._run(["workspace", "select", "-or-create", workspace])
            self._workspaces.add(workspace)

    async def apply(self, workspace: str, variables: Optional[Dict[str, Any]] = None) -> None:
        await self.ensure_workspace(workspace)
        async with ephemeral_tfvars(variables, self.ephemeral_dir) as tfvars_args:
            await self._run(["apply"], workspace, tfvars_args)

    async def destroy(self, workspace: str, variables: Optional[Dict[str, Any]] = None) -> None:
        await self.ensure_workspace(workspace)
        async with ephemeral_tfvars(variables, self.ephemeral_dir) as tfvars_args:
            await self._run(["destroy"], workspace, tfvars_args)

    async def output(self, workspace: str) -> Dict[str, Any]:
        """Return the root module outputs of `workspace` as plain values."""
        raw = await self._run(["output"], workspace)
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CommandError(f"unparseable terraform output for {workspace}") from exc
        return {
            name: TerraformOutputValue.model_validate(entry).value
            for name, entry in parsed.items()
        }
