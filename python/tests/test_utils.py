from __future__ import annotations

import logging
import os

import pytest

from meshkube.errors import CommandError
from meshkube.utils.async_command_runner import run_command
from meshkube.utils.async_retry import async_retry
from meshkube.utils.ephemeral_file import ephemeral_manager, ephemeral_tfvars
from meshkube.utils.logging_setup import configure_logging


class TestAsyncRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        attempts = []

        @async_retry(retries=3, delay=0.01)
        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise RuntimeError("not yet")
            return "ok"

        assert await flaky() == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up(self):
        attempts = []

        @async_retry(retries=2, delay=0.01, noisy=True)
        async def broken():
            attempts.append(1)
            raise RuntimeError("always")

        with pytest.raises(RuntimeError, match="always"):
            await broken()
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_only_retries_selected_errors(self):
        attempts = []

        @async_retry(retries=5, delay=0.01, retry_on=(CommandError,))
        async def wrong_kind():
            attempts.append(1)
            raise KeyError("x")

        with pytest.raises(KeyError):
            await wrong_kind()
        assert len(attempts) == 1

    def test_preserves_name(self):
        @async_retry()
        async def named():
            """Docs."""

        assert named.__qualname__.endswith("named")
        assert named.__doc__ == "Docs."


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_stdout(self):
        assert (await run_command(["echo", "hello"], retries=1)).strip() == "hello"

    @pytest.mark.asyncio
    async def test_failure(self):
        with pytest.raises(CommandError) as exc:
            await run_command(["false"], retries=1)
        assert exc.value.return_code == 1

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        with pytest.raises(CommandError, match="Executable not found"):
            await run_command(["meshkube-no-such-binary"], retries=1)


class TestEphemeralFiles:
    @pytest.mark.asyncio
    async def test_file_removed_on_exit(self, tmp_path):
        async with ephemeral_manager("key", content="secret", parent_dir=str(tmp_path)) as path:
            assert os.path.isfile(path)
            assert oct(os.stat(path).st_mode & 0o777) == "0o600"
        assert not os.path.exists(path)
        assert not os.path.exists(os.path.dirname(path))

    @pytest.mark.asyncio
    async def test_tfvars(self, tmp_path):
        async with ephemeral_tfvars({}, str(tmp_path)) as args:
            assert args == []
        async with ephemeral_tfvars({"count": 2}, str(tmp_path)) as args:
            assert args[0] == "-var-file"
            assert args[1].endswith(".auto.tfvars.json")


class TestLogging:
    def test_configure_twice_keeps_one_handler(self):
        configure_logging("debug")
        configure_logging("INFO")
        logger = logging.getLogger("meshkube")
        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO

    def test_unknown_level_falls_back_to_info(self):
        configure_logging("chatty")
        assert logging.getLogger("meshkube").level == logging.INFO
