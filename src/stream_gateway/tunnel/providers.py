"""Tunnel provider variants.

A provider is nothing more than a command template for an external binary
plus a matcher that picks the assigned public URL out of that binary's free
form log output. Adding a provider means adding one small class here.
"""

import re
from typing import Protocol, runtime_checkable

from ..common.exceptions import BinaryNotFoundError, ConfigurationError
from ..common.process import resolve_binary
from .models import ProviderKind

URL_REGEX = re.compile(r"https://[^\s\"'<>|]+")


def extract_url(line: str) -> str | None:
    """Return the first https URL in a line, without a trailing slash or period."""
    match = URL_REGEX.search(line)
    if match is None:
        return None
    url = match.group(0).rstrip("/.,;")
    if len(url) <= len("https://") + 2:
        return None
    return url


@runtime_checkable
class TunnelProvider(Protocol):
    """Capabilities TunnelManager needs from a provider."""

    kind: ProviderKind

    def preflight(self) -> None:
        """Raise BinaryNotFoundError if the provider cannot run on this host."""
        ...

    def build_command(self, local_port: int) -> list[str]:
        ...

    def match_line(self, line: str) -> str | None:
        """Return the public base URL if this output line announces it."""
        ...


class DisabledProvider:
    """No tunnel; the gateway uses its configured fallback URL."""

    kind = ProviderKind.NONE

    def preflight(self) -> None:
        raise ConfigurationError("Tunnel provider is disabled")

    def build_command(self, local_port: int) -> list[str]:
        raise ConfigurationError("Tunnel provider is disabled")

    def match_line(self, line: str) -> str | None:
        return None


class SshReverseForward:
    """``ssh -R`` against localhost.run, which needs nothing but an ssh client.

    localhost.run prints a banner full of URLs (docs, admin console, social
    links) and, among them, the assigned ``*.lhr.life`` hostname.
    """

    kind = ProviderKind.SSH_FORWARD

    HOST = "localhost.run"
    TUNNEL_DOMAINS = (".lhr.life", ".localhost.run")
    IGNORED = ("admin.localhost.run", "localhost.run/docs", "twitter.com")

    def __init__(self, binary: str | None = None, host: str | None = None):
        self.binary = binary or "ssh"
        self.host = host or self.HOST

    def preflight(self) -> None:
        self.binary = resolve_binary(self.binary)

    def build_command(self, local_port: int) -> list[str]:
        return [
            self.binary,
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", "ServerAliveInterval=30",
            "-o", "ServerAliveCountMax=3",
            "-o", "ExitOnForwardFailure=yes",
            "-R", f"80:localhost:{local_port}",
            f"nokey@{self.host}",
        ]

    def match_line(self, line: str) -> str | None:
        url = extract_url(line)
        if url is None:
            return None
        if any(ignored in url for ignored in self.IGNORED):
            return None
        host = url[len("https://"):].split("/", 1)[0]
        if not host.endswith(self.TUNNEL_DOMAINS):
            return None
        return f"https://{host}"


class ManagedBinaryForward:
    """Cloudflare quick tunnel via ``cloudflared``, which logs its URL to stderr."""

    kind = ProviderKind.MANAGED_BINARY_FORWARD

    TUNNEL_DOMAIN = ".trycloudflare.com"

    def __init__(self, binary: str | None = None):
        self.binary = binary or "cloudflared"

    def preflight(self) -> None:
        try:
            self.binary = resolve_binary(self.binary)
        except BinaryNotFoundError as e:
            raise BinaryNotFoundError(
                f"{e}. Install from https://developers.cloudflare.com/cloudflare-one/"
                "connections/connect-apps/install-and-setup/installation/"
            ) from e

    def build_command(self, local_port: int) -> list[str]:
        return [
            self.binary,
            "tunnel",
            "--no-autoupdate",
            "--url",
            f"http://localhost:{local_port}",
        ]

    def match_line(self, line: str) -> str | None:
        url = extract_url(line)
        if url is None:
            return None
        host = url[len("https://"):].split("/", 1)[0]
        if not host.endswith(self.TUNNEL_DOMAIN):
            return None
        return f"https://{host}"


_ALIASES: dict[str, ProviderKind] = {
    "": ProviderKind.NONE,
    "none": ProviderKind.NONE,
    "disabled": ProviderKind.NONE,
    "ssh": ProviderKind.SSH_FORWARD,
    "ssh-forward": ProviderKind.SSH_FORWARD,
    "localhost.run": ProviderKind.SSH_FORWARD,
    "localhostrun": ProviderKind.SSH_FORWARD,
    "localhost-run": ProviderKind.SSH_FORWARD,
    "cloudflare": ProviderKind.MANAGED_BINARY_FORWARD,
    "cloudflared": ProviderKind.MANAGED_BINARY_FORWARD,
    "cf": ProviderKind.MANAGED_BINARY_FORWARD,
    "managed-binary-forward": ProviderKind.MANAGED_BINARY_FORWARD,
}


def parse_provider_kind(name: str | ProviderKind | None) -> ProviderKind:
    """Map a configured provider name or alias to its kind.

    Raises:
        ConfigurationError: If the name is not recognized
    """
    if isinstance(name, ProviderKind):
        return name
    key = (name or "").strip().lower()
    try:
        return _ALIASES[key]
    except KeyError:
        raise ConfigurationError(f"Unknown tunnel provider: {name}") from None


def create_provider(
    kind: ProviderKind | str | None, binary: str | None = None
) -> TunnelProvider:
    """Build the provider variant for a kind."""
    kind = parse_provider_kind(kind)
    if kind == ProviderKind.SSH_FORWARD:
        return SshReverseForward(binary=binary)
    if kind == ProviderKind.MANAGED_BINARY_FORWARD:
        return ManagedBinaryForward(binary=binary)
    return DisabledProvider()
