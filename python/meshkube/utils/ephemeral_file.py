"""
meshkube/utils/ephemeral_file.py

Async context managers for short-lived files holding secrets (SSH private keys,
known_hosts, tfvars with credentials). Files live in `/dev/shm` when available
so they never hit disk, and are removed on exit whatever happens inside the
block.
"""

import json
import os
import tempfile
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import aiofiles

DEFAULT_PARENT_DIR = "/dev/shm"


def _resolve_parent_dir(parent_dir: Optional[str]) -> Optional[str]:
    """Use the requested dir, else /dev/shm if present, else the system temp dir."""
    if parent_dir is not None:
        return parent_dir
    if os.path.isdir(DEFAULT_PARENT_DIR):
        return DEFAULT_PARENT_DIR
    return None


@asynccontextmanager
async def ephemeral_manager(
    file_name: str,
    *,
    content: Optional[str] = None,
    mode: int = 0o600,
    prefix: str = "ephemeral-",
    parent_dir: Optional[str] = None,
) -> AsyncGenerator[str, None]:
    """
    Create a private directory holding a single file path and yield that path.

    If `content` is given the file is written (and chmod'ed to `mode`) before
    the path is yielded; otherwise only the path is reserved and the caller or
    a subprocess may create the file.

    Args:
        file_name: Name of the file inside the ephemeral directory.
        content: Optional text written to the file up front.
        mode: Permission bits applied after writing `content`.
        prefix: Prefix for the ephemeral directory name.
        parent_dir: Where to create the directory. Defaults to /dev/shm.

    Yields:
        str: Absolute path of the ephemeral file.
    """
    ephemeral_dir = tempfile.mkdtemp(dir=_resolve_parent_dir(parent_dir), prefix=prefix)
    ephemeral_path = os.path.join(ephemeral_dir, file_name)

    try:
        if content is not None:
            async with aiofiles.open(ephemeral_path, "w", encoding="utf-8") as f:
                await f.write(content)
            os.chmod(ephemeral_path, mode)
        yield ephemeral_path
    finally:
        if os.path.isdir(ephemeral_dir):
            for item in os.listdir(ephemeral_dir):
                item_path = os.path.join(ephemeral_dir, item)
                if os.path.isfile(item_path) or os.path.islink(item_path):
                    os.remove(item_path)
            os.rmdir(ephemeral_dir)


@asynccontextmanager
async def ephemeral_tfvars(
    variables: Optional[Dict[str, Any]],
    parent_dir: Optional[str] = None,
) -> AsyncGenerator[list, None]:
    """
    Write `variables` to an ephemeral .auto.tfvars.json file and yield the
    matching `-var-file` arguments, or an empty list if there is nothing to pass.
    """
    if not variables:
        yield []
        return

    async with ephemeral_manager(
        "meshkube.auto.tfvars.json",
        content=json.dumps(variables, indent=2),
        prefix="tfvars-",
        parent_dir=parent_dir,
    ) as tfvars_file:
        yield ["-var-file", tfvars_file]
