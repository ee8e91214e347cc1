"""Shared pytest fixtures for stream gateway tests."""

import asyncio
import os
import re
import sys
import textwrap

import pytest

from stream_gateway.streams.registry import StreamRegistry
from stream_gateway.streams.token import TokenCodec
from stream_gateway.tunnel.models import ProviderKind, TunnelStatus

FAKE_URL_REGEX = re.compile(r"https://[a-z0-9-]+\.fake-tunnel\.test")


class ScriptProvider:
    """Provider variant that runs a Python snippet instead of a real tunnel binary."""

    kind = ProviderKind.SSH_FORWARD

    def __init__(self, script: str):
        self.script = textwrap.dedent(script)
        self.commands: list[list[str]] = []

    def preflight(self) -> None:
        pass

    def build_command(self, local_port: int) -> list[str]:
        command = [sys.executable, "-u", "-c", self.script, str(local_port)]
        self.commands.append(command)
        return command

    def match_line(self, line: str) -> str | None:
        match = FAKE_URL_REGEX.search(line)
        return match.group(0) if match else None


@pytest.fixture
def codec():
    """Token codec with a fixed test secret."""
    return TokenCodec("test-secret")


@pytest.fixture
def registry(codec):
    """Empty stream registry."""
    return StreamRegistry(codec)


@pytest.fixture
def media_file(tmp_path):
    """A 10 MB file with non-repeating content.

    Returns:
        tuple: (path, content)
    """
    content = os.urandom(10 * 1024 * 1024)
    path = tmp_path / "movie.mp4"
    path.write_bytes(content)
    return path, content


@pytest.fixture
def script_provider():
    """Factory for providers backed by a Python snippet."""
    return ScriptProvider


async def wait_for_status(manager, status: TunnelStatus, timeout: float = 10.0):
    """Poll until the manager reaches a status or fail the test."""
    async def poll():
        while manager.state.status != status:
            await asyncio.sleep(0.01)

    try:
        await asyncio.wait_for(poll(), timeout=timeout)
    except TimeoutError:
        pytest.fail(f"Tunnel stayed {manager.state.status.value}, expected {status.value}")
    return manager.state


@pytest.fixture
def wait_status():
    """Expose wait_for_status to tests."""
    return wait_for_status
