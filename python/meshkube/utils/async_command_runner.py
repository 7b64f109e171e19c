"""
meshkube/utils/async_command_runner.py

Asynchronous subprocess runner with retry logic, used for every local command
the orchestrator shells out to (terraform, ssh, kubectl).

An optional `error_parser` callback can inspect stderr for known failures and
return a short message instead of the generic "Command failed" one.

Usage example:
    from meshkube.utils.async_command_runner import run_command, CommandError

    try:
        output = await run_command(["terraform", "version"], retries=1)
    except CommandError as err:
        print(f"Command failed: {err}")
"""

from __future__ import annotations

import os
import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence

from meshkube.errors import CommandError
from meshkube.utils.async_retry import async_retry

logger = logging.getLogger(__name__)


async def run_command(
    command: List[str],
    *,
    sensitive: bool = True,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
    input_data: Optional[str] = None,
    successful_return_codes: Sequence[int] = (0,),
    retries: int = 3,
    retry_delay: float = 1.0,
    suppress_env_vars: Optional[List[str]] = None,
    error_parser: Optional[Callable[[str], Optional[str]]] = None,
) -> str:
    """
    Executes a local command in a subprocess, asynchronously, with optional retries
    and an optional error parser callback.

    When `sensitive=True`, the command, stdout and stderr are omitted from the
    raised error message (they may contain credentials).

    Args:
        command: The command and arguments to execute.
        sensitive: If True, hides command details in the raised error.
        env: Additional environment variables to add or override.
        cwd: Working directory for the command.
        input_data: If provided, passed to stdin.
        successful_return_codes: Return codes not treated as errors. Defaults to (0,).
        retries: Total number of attempts. Defaults to 3.
        retry_delay: Delay in seconds between attempts. Defaults to 1.0.
        suppress_env_vars: Environment variables to remove before running.
        error_parser: Receives stderr; a non-None result becomes the error message.

    Returns:
        str: The captured stdout of the command on success.

    Raises:
        CommandError: If the command fails after all retries.
    """

    @async_retry(retries=retries, delay=retry_delay, retry_on=(CommandError,))
    async def _inner_run_command() -> str:
        if env is None and not suppress_env_vars:
            proc_env = None
        else:
            proc_env = os.environ.copy()
            if suppress_env_vars:
                for var in suppress_env_vars:
                    proc_env.pop(var, None)
            if env:
                proc_env.update(env)

        stdin = asyncio.subprocess.PIPE if input_data else asyncio.subprocess.DEVNULL

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=proc_env,
                cwd=cwd,
            )
        except FileNotFoundError as exc:
            raise CommandError(f"Executable not found: {command[0]}") from exc

        stdout_bytes, stderr_bytes = await proc.communicate(
            input=input_data.encode() if input_data else None
        )
        stdout_str = stdout_bytes.decode(errors="replace").strip()
        stderr_str = stderr_bytes.decode(errors="replace").strip()

        if proc.returncode not in successful_return_codes:
            short_message = error_parser(stderr_str) if error_parser else None
            if short_message is not None:
                raise CommandError(short_message, proc.returncode)

            detail = ""
            if not sensitive:
                detail = (
                    f"\nCommand: {' '.join(command)}"
                    f"\nStdout: {stdout_str}"
                    f"\nStderr: {stderr_str}"
                )

            raise CommandError(
                f"Command failed with return code {proc.returncode}.{detail}",
                proc.returncode,
            )

        return stdout_str

    if not sensitive:
        logger.debug("Running command: %s", " ".join(command))
    return await _inner_run_command()


__all__ = ["run_command", "CommandError"]
