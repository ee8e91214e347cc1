"""Composition root wiring the file server, stream registry and tunnel."""

import asyncio
from collections.abc import Iterable
from pathlib import Path
from types import TracebackType
from typing import Any
from urllib.parse import quote

from aiohttp import web

from .common.exceptions import GatewayStartupError
from .common.logging import get_logger
from .common.utils import mask_sensitive_data, sanitize_log_data
from .config import GatewayConfig
from .server.app import PathResolver, RangeFileServer
from .streams.models import StreamFile
from .streams.registry import StreamRegistry
from .streams.token import TokenCodec
from .tunnel.manager import TunnelManager
from .tunnel.models import TunnelState
from .tunnel.providers import TunnelProvider, create_provider

logger = get_logger(__name__)


class GatewayFacade:
    """Serves registered streams locally and publishes them through a tunnel."""

    def __init__(
        self,
        config: GatewayConfig,
        provider: TunnelProvider | None = None,
        path_resolver: PathResolver | None = None,
    ):
        """Initialize the gateway without binding anything yet.

        Args:
            config: Gateway configuration
            provider: Tunnel provider, built from config when omitted
            path_resolver: Optional hook to re-locate files that have moved
        """
        self.config = config
        self.codec = TokenCodec(config.secret)
        self.registry = StreamRegistry(self.codec)
        self.server = RangeFileServer(
            self.registry,
            path_resolver=path_resolver,
            status_provider=lambda: self.tunnel_state.summary(),
            max_age=config.stream_max_age,
        )
        self._provider = provider or create_provider(
            config.tunnel_provider, binary=config.tunnel_binary
        )
        self._tunnel: TunnelManager | None = None
        self._runner: web.AppRunner | None = None
        self._sweeper: asyncio.Task[None] | None = None
        self._bound_port: int | None = None

    async def __aenter__(self) -> "GatewayFacade":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    @property
    def port(self) -> int:
        """Port actually bound, which differs from the config when it is 0."""
        return self._bound_port if self._bound_port is not None else self.config.port

    @property
    def tunnel(self) -> TunnelManager | None:
        return self._tunnel

    @property
    def tunnel_state(self) -> TunnelState:
        if self._tunnel is None:
            return TunnelState(provider=self._provider.kind)
        return self._tunnel.state

    async def start(self) -> None:
        """Bind the HTTP listener, then start the sweeper and the tunnel.

        Raises:
            GatewayStartupError: If the listener cannot be bound
        """
        logger.debug(
            "Gateway configuration", **sanitize_log_data(self.config.model_dump(mode="json"))
        )
        runner = web.AppRunner(self.server.build_app())
        await runner.setup()
        site = web.TCPSite(runner, self.config.host, self.config.port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            raise GatewayStartupError(
                f"Cannot bind file server to {self.config.host}:{self.config.port}: {e}"
            ) from e
        self._runner = runner
        self._bound_port = self._read_bound_port(runner)
        logger.info(
            "File server listening",
            host=self.config.host,
            port=self.port,
            secret=mask_sensitive_data(self.config.secret),
        )

        self._sweeper = asyncio.create_task(
            self.registry.run_sweeper(
                self.config.stream_sweep_interval, self.config.stream_max_age
            ),
            name="stream-sweeper",
        )

        self._tunnel = TunnelManager(
            self._provider,
            self.port,
            establish_timeout=self.config.tunnel_establish_timeout,
            reconnect_backoff=self.config.tunnel_reconnect_backoff,
            reconnect_backoff_max=self.config.tunnel_reconnect_backoff_max,
            max_reconnects=self.config.tunnel_max_reconnects,
        )
        await self._tunnel.start()

    async def stop(self) -> None:
        """Stop the tunnel, the sweeper and the listener."""
        if self._tunnel is not None:
            await self._tunnel.stop()

        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass

        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()
            logger.info("File server stopped")

    def current_public_base_url(self) -> str | None:
        """Public tunnel URL, None unless the tunnel is established."""
        return self.tunnel_state.public_base_url

    def base_url(self) -> str:
        """Base URL for links: the tunnel when up, the configured fallback otherwise."""
        public = self.current_public_base_url()
        if public:
            return public
        if self.config.base_url:
            return self.config.base_url
        if self._bound_port is not None:
            return self.config.model_copy(update={"port": self._bound_port}).fallback_base_url
        return self.config.fallback_base_url

    def build_url(self, token: str, display_name: str) -> str:
        """Stream link with the display name escaped into a single path segment."""
        filename = quote(display_name, safe="")
        return f"{self.base_url()}/stream/{token}/{filename}"

    def register_stream(
        self,
        resource_id: str,
        sub_index: int,
        file_path: str | Path,
        display_name: str,
    ) -> str:
        """Register one file and return the link to hand to the user.

        Never waits on the tunnel: while it is down, the fallback base is used.
        """
        entry = self.registry.register_file(resource_id, sub_index, file_path, display_name)
        return self.build_url(entry.token, entry.display_name)

    def register_resource(
        self,
        resource_id: str,
        files: Iterable[StreamFile | dict[str, Any]],
        min_size: int | None = None,
    ) -> dict[int, str]:
        """Register every streamable file of a resource.

        Files smaller than ``min_size`` (default from config) are skipped.

        Returns:
            Mapping of file index to stream URL
        """
        threshold = self.config.min_stream_file_size if min_size is None else min_size
        urls: dict[int, str] = {}
        for item in files:
            stream_file = item if isinstance(item, StreamFile) else StreamFile(**item)
            if stream_file.size < threshold:
                logger.debug(
                    "Skipping small file",
                    resource_id=resource_id,
                    index=stream_file.index,
                    size=stream_file.size,
                )
                continue
            urls[stream_file.index] = self.register_stream(
                resource_id, stream_file.index, stream_file.path, stream_file.display_name
            )
        return urls

    @staticmethod
    def _read_bound_port(runner: web.AppRunner) -> int | None:
        for address in runner.addresses:
            if isinstance(address, tuple) and len(address) >= 2:
                return int(address[1])
        return None
