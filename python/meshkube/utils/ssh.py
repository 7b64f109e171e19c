"""
meshkube/utils/ssh.py

SSH helpers built on the OpenSSH client, with the private key and known_hosts
kept in ephemeral files under /dev/shm:
  - ssh_get_server_key: minimal handshake to retrieve a server's host key (TOFU).
  - run_ssh_command: strict host-key-checking SSH (expects host_keys in SSHConfig).
  - write_remote_file: upload text content through the SSH channel.
  - SSHConnector: resolves NodeOutput -> SSHConfig, caching host keys per host.

'successful_return_codes' can be passed to run_ssh_command to accept non-zero
codes as successes (e.g. 255 when a reboot drops the connection).
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from typing import Dict, List, Optional, Sequence

import aiofiles
import aiofiles.ospath

from meshkube.errors import CommandError
from meshkube.models.nodes import NodeOutput
from meshkube.models.ssh import SSHConfig
from meshkube.utils.async_command_runner import run_command
from meshkube.utils.ephemeral_file import ephemeral_manager

logger = logging.getLogger(__name__)


def _base_ssh_args(cfg: SSHConfig, key_path: str, known_hosts: str, strict: str) -> List[str]:
    return [
        "ssh",
        "-p",
        str(cfg.port),
        "-i",
        key_path,
        "-o",
        "BatchMode=yes",
        "-o",
        "ConnectTimeout=15",
        "-o",
        f"StrictHostKeyChecking={strict}",
        "-o",
        f"UserKnownHostsFile={known_hosts}",
        "-o",
        "GlobalKnownHostsFile=/dev/null",
        f"{cfg.user}@{cfg.hostname}",
    ]


async def ssh_get_server_key(
    cfg: SSHConfig,
    *,
    retries: int = 3,
    retry_delay: float = 1.0,
) -> List[str]:
    """
    Perform a minimal SSH handshake with StrictHostKeyChecking=accept-new
    to retrieve the server's host key lines (TOFU).

    Args:
      cfg: SSHConfig with user, hostname, port, private_key.
      retries: attempts before giving up
      retry_delay: seconds between retries

    Returns:
      A list of lines from the ephemeral known_hosts (the server's keys).

    Raises:
      CommandError: if the handshake fails or no host keys were recorded
    """
    async with ephemeral_manager("ssh_known_hosts", prefix="sshkh-") as kh_path:
        async with ephemeral_manager(
            "ssh_idkey", content=cfg.private_key, prefix="sshpk-"
        ) as pk_path:
            ssh_cmd = _base_ssh_args(cfg, pk_path, kh_path, "accept-new") + [
                "exit",
                "0",
            ]
            await run_command(ssh_cmd, retries=retries, retry_delay=retry_delay)

            lines: List[str] = []
            if await aiofiles.ospath.exists(kh_path):
                async with aiofiles.open(kh_path, "r", encoding="utf-8") as fkh:
                    content = await fkh.readlines()
                    lines = [ln.strip() for ln in content if ln.strip()]

            if not lines:
                raise CommandError(
                    "ssh_get_server_key found no lines; server key not retrieved."
                )
            return lines


async def run_ssh_command(
    ssh_config: SSHConfig,
    remote_command: List[str],
    *,
    sensitive: bool = True,
    env: Optional[Dict[str, str]] = None,
    input_data: Optional[str] = None,
    retries: int = 3,
    retry_delay: float = 1.0,
    successful_return_codes: Optional[Sequence[int]] = None,
) -> str:
    """
    Run an SSH command in strict host-key-checking mode, requiring host_keys in ssh_config.

    Args:
      ssh_config: Must have user, hostname, port, private_key, host_keys
      remote_command: The remote command tokens, shell-quoted before sending
      sensitive: If True, hides details on error
      env: optional environment variables prefixed with `env`
      input_data: optional text piped to the remote command's stdin
      retries: attempts before giving up
      retry_delay: seconds between retries
      successful_return_codes: exit codes considered "non-error"

    Returns:
      captured stdout from the remote command

    Raises:
      CommandError: if host_keys is empty or the command fails
    """
    if not ssh_config.host_keys:
        raise CommandError("run_ssh_command requires non-empty host_keys.")

    known_hosts = "".join(line + "\n" for line in ssh_config.host_keys)
    async with ephemeral_manager(
        "ssh_known_hosts", content=known_hosts, prefix="sshkh-"
    ) as kh_path:
        async with ephemeral_manager(
            "ssh_idkey", content=ssh_config.private_key, prefix="sshpk-"
        ) as pk_path:
            ssh_cmd = _base_ssh_args(ssh_config, pk_path, kh_path, "yes")
            if env:
                remote_command = (
                    ["env"] + [f"{k}={v}" for k, v in env.items()] + remote_command
                )
            ssh_cmd.append(" ".join(shlex.quote(x) for x in remote_command))

            return await run_command(
                ssh_cmd,
                sensitive=sensitive,
                input_data=input_data,
                retries=retries,
                retry_delay=retry_delay,
                successful_return_codes=successful_return_codes or (0,),
            )


async def write_remote_file(
    ssh_config: SSHConfig,
    path: str,
    content: str,
    *,
    mode: str = "0644",
) -> None:
    """
    Write `content` to `path` on the remote host as root.

    The content is hex-encoded and decoded remotely with xxd so no quoting of
    the payload is ever needed.
    """
    enc = content.encode("utf-8").hex()
    parent = shlex.quote(path.rsplit("/", 1)[0] or "/")
    target = shlex.quote(path)
    cmd = (
        f"sudo mkdir -p {parent} && "
        f"echo '{enc}' | xxd -r -p | sudo tee {target} >/dev/null && "
        f"sudo chmod {mode} {target}"
    )
    await run_ssh_command(ssh_config, ["bash", "-c", cmd], sensitive=True)


class SSHConnector:
    """
    Builds strict-mode SSHConfig objects for deployed nodes.

    Host keys are learned once per host on first use (TOFU) and reused for
    every later connection made through this connector.
    """

    def __init__(
        self,
        private_key: str,
        user: str = "ubuntu",
        port: int = 22,
        connect_retries: int = 30,
        retry_delay: float = 5.0,
    ) -> None:
        self.private_key = private_key
        self.user = user
        self.port = port
        self.connect_retries = connect_retries
        self.retry_delay = retry_delay
        self._host_keys: Dict[str, List[str]] = {}
        self._lock = asyncio.Lock()

    async def config_for(self, node: NodeOutput) -> SSHConfig:
        host = node.ssh_host
        if not host:
            raise CommandError(f"node {node.name} has no reachable address")

        async with self._lock:
            cached = self._host_keys.get(host)
        if cached is None:
            base = SSHConfig(
                user=self.user,
                hostname=host,
                port=self.port,
                private_key=self.private_key,
            )
            logger.info("Fetching host key for %s (%s)", node.name, host)
            cached = await ssh_get_server_key(
                base, retries=self.connect_retries, retry_delay=self.retry_delay
            )
            async with self._lock:
                self._host_keys[host] = cached

        return SSHConfig(
            user=self.user,
            hostname=host,
            port=self.port,
            private_key=self.private_key,
            host_keys=cached,
        )

    async def run(self, node: NodeOutput, remote_command: List[str], **kwargs) -> str:
        cfg = await self.config_for(node)
        return await run_ssh_command(cfg, remote_command, **kwargs)

    async def write_file(self, node: NodeOutput, path: str, content: str, mode: str = "0644") -> None:
        cfg = await self.config_for(node)
        await write_remote_file(cfg, path, content, mode=mode)
