"""Supervision of the tunnel provider process."""

import asyncio
from collections.abc import Callable

from ..common.exceptions import (
    BinaryNotFoundError,
    ConfigurationError,
    ProcessError,
    TunnelEstablishError,
)
from ..common.logging import get_logger
from ..common.process import AsyncProcessManager
from .models import ProviderKind, TunnelState, TunnelStatus
from .providers import TunnelProvider

logger = get_logger(__name__)

StateListener = Callable[[TunnelState], None]

_SETTLED = (TunnelStatus.ESTABLISHED, TunnelStatus.FAILED, TunnelStatus.DISABLED)


class TunnelManager:
    """Spawns a provider process, scrapes its public URL and keeps it alive.

    Lifecycle: disabled -> connecting -> established <-> reconnecting -> failed.
    The manager is the only writer of its TunnelState; every transition
    publishes a new immutable snapshot, so readers either see the previous
    state or the next one. A URL is only ever visible next to ESTABLISHED.
    """

    def __init__(
        self,
        provider: TunnelProvider,
        local_port: int,
        establish_timeout: float = 30.0,
        reconnect_backoff: float = 2.0,
        reconnect_backoff_max: float = 60.0,
        max_reconnects: int | None = None,
        stable_after: float = 60.0,
        terminate_timeout: float = 5.0,
    ):
        """Initialize the tunnel manager.

        Args:
            provider: Provider variant describing command and URL matcher
            local_port: Local HTTP port the tunnel forwards to
            establish_timeout: Seconds to wait for the provider to print its URL
            reconnect_backoff: Initial delay before respawning after a crash
            reconnect_backoff_max: Upper bound for the doubling backoff
            max_reconnects: Reconnect attempts allowed without a stable session
                in between, None for unlimited
            stable_after: Seconds a session must stay up to reset the reconnect count
            terminate_timeout: Grace period before a child is killed
        """
        self.provider = provider
        self.local_port = local_port
        self.establish_timeout = establish_timeout
        self.reconnect_backoff = reconnect_backoff
        self.reconnect_backoff_max = reconnect_backoff_max
        self.max_reconnects = max_reconnects
        self.stable_after = stable_after
        self.terminate_timeout = terminate_timeout

        self._state = TunnelState(provider=provider.kind)
        self._process: AsyncProcessManager | None = None
        self._supervisor: asyncio.Task[None] | None = None
        self._drain: asyncio.Task[None] | None = None
        self._listeners: list[StateListener] = []
        self._reconnects = 0
        self._changed = asyncio.Event()

    @property
    def state(self) -> TunnelState:
        return self._state

    @property
    def public_base_url(self) -> str | None:
        return self._state.public_base_url

    @property
    def is_running(self) -> bool:
        return self._supervisor is not None and not self._supervisor.done()

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with every new state."""
        self._listeners.append(listener)

    async def start(self) -> TunnelState:
        """Start supervising in the background.

        Returns immediately; use wait_established() to await the first URL.
        A disabled provider never spawns anything.
        """
        if self.provider.kind == ProviderKind.NONE:
            logger.info("No tunnel provider configured")
            self._publish(TunnelStatus.DISABLED)
            return self._state

        if self.is_running:
            logger.debug("Tunnel supervisor already running")
            return self._state

        self._supervisor = asyncio.create_task(
            self._supervise(), name=f"tunnel-{self.provider.kind.value}"
        )
        return self._state

    async def stop(self) -> None:
        """Shut the tunnel down for good; no reconnect follows."""
        supervisor, self._supervisor = self._supervisor, None
        if supervisor is not None and not supervisor.done():
            supervisor.cancel()
            try:
                await supervisor
            except asyncio.CancelledError:
                pass

        await self._release_child()
        if self._state.status != TunnelStatus.DISABLED:
            self._publish(TunnelStatus.DISABLED, pid=None)
        logger.info("Tunnel stopped", provider=self.provider.kind.value)

    async def wait_established(self, timeout: float | None = None) -> str | None:
        """Wait until the tunnel settles and return its URL, if any.

        Returns as soon as the tunnel is established, failed or disabled, or
        when the timeout expires.
        """

        async def settled() -> None:
            while self._state.status not in _SETTLED or (
                self._state.status == TunnelStatus.DISABLED and self.is_running
            ):
                await self._changed.wait()

        try:
            await asyncio.wait_for(settled(), timeout=timeout)
        except TimeoutError:
            pass
        return self._state.public_base_url

    def reconnect_delay(self, attempt: int) -> float:
        """Backoff before reconnect attempt number ``attempt`` (zero based)."""
        return min(self.reconnect_backoff * (2**attempt), self.reconnect_backoff_max)

    async def _supervise(self) -> None:
        try:
            try:
                self.provider.preflight()
            except (BinaryNotFoundError, ConfigurationError) as e:
                logger.error("Tunnel preflight failed", error=str(e))
                self._publish(TunnelStatus.FAILED, last_error=str(e))
                return

            self._publish(TunnelStatus.CONNECTING, attempt=1, last_error=None)
            try:
                url = await self._connect()
            except (TunnelEstablishError, ProcessError) as e:
                await self._fail(str(e))
                return

            loop = asyncio.get_running_loop()
            self._reconnects = 0
            while True:
                self._publish(
                    TunnelStatus.ESTABLISHED, url, pid=self._child_pid(), last_error=None
                )
                established_at = loop.time()
                code = await self._watch()
                self._publish(
                    TunnelStatus.RECONNECTING,
                    pid=None,
                    last_error=f"Provider exited with code {code}",
                )
                logger.warning(
                    "Tunnel process exited unexpectedly",
                    provider=self.provider.kind.value,
                    exit_code=code,
                )
                await self._release_child()
                if loop.time() - established_at >= self.stable_after:
                    self._reconnects = 0

                new_url = await self._reconnect()
                if new_url is None:
                    return
                url = new_url
        finally:
            await self._release_child()

    async def _reconnect(self) -> str | None:
        """Respawn with backoff until a URL is found or the budget runs out."""
        while True:
            reconnects = self._reconnects
            if self.max_reconnects is not None and reconnects >= self.max_reconnects:
                await self._fail(f"Gave up after {reconnects} reconnect attempts")
                return None

            delay = self.reconnect_delay(reconnects)
            logger.info("Reconnecting tunnel", delay=delay, attempt=reconnects + 1)
            await asyncio.sleep(delay)
            self._reconnects += 1

            self._publish(TunnelStatus.RECONNECTING, attempt=self._state.attempt + 1)
            try:
                return await self._connect()
            except (TunnelEstablishError, ProcessError) as e:
                logger.warning("Reconnect attempt failed", error=str(e))
                await self._release_child()
                self._publish(TunnelStatus.RECONNECTING, pid=None, last_error=str(e))

    async def _connect(self) -> str:
        """Spawn the provider and read its output until the URL shows up.

        Raises:
            TunnelEstablishError: On timeout or if the child exits first
            ProcessError: If the child cannot be spawned
        """
        await self._release_child()
        command = self.provider.build_command(self.local_port)
        process = AsyncProcessManager(command, terminate_timeout=self.terminate_timeout)
        self._process = process
        await process.start()

        try:
            async with asyncio.timeout(self.establish_timeout):
                while True:
                    line = await process.readline()
                    if line is None:
                        code = await process.wait()
                        raise TunnelEstablishError(
                            f"{self.provider.kind.value} exited with code {code} "
                            "before reporting a public URL"
                        )
                    logger.debug("Tunnel output", line=line)
                    url = self.provider.match_line(line)
                    if url:
                        logger.info("Tunnel URL found", url=url, pid=process.pid)
                        return url
        except TimeoutError:
            raise TunnelEstablishError(
                f"No public URL from {self.provider.kind.value} "
                f"within {self.establish_timeout:g}s"
            ) from None

    async def _watch(self) -> int:
        """Drain output in the background and wait for the child to exit."""
        process = self._process
        if process is None:
            return -1
        self._drain = asyncio.create_task(self._drain_output(process), name="tunnel-drain")
        code = await process.wait()
        await self._cancel_drain()
        return code

    async def _drain_output(self, process: AsyncProcessManager) -> None:
        """Keep consuming output so the child never blocks on a full pipe."""
        while True:
            line = await process.readline()
            if line is None:
                return
            logger.debug("Tunnel output", line=line)

    async def _cancel_drain(self) -> None:
        drain, self._drain = self._drain, None
        if drain is None or drain.done():
            return
        drain.cancel()
        try:
            await drain
        except asyncio.CancelledError:
            pass

    async def _release_child(self) -> None:
        """Stop the drain task and make sure the current child is gone."""
        await self._cancel_drain()
        process, self._process = self._process, None
        if process is not None:
            await process.stop()

    async def _fail(self, reason: str) -> None:
        logger.error("Tunnel failed", provider=self.provider.kind.value, error=reason)
        await self._release_child()
        self._publish(TunnelStatus.FAILED, pid=None, last_error=reason)

    def _child_pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def _publish(
        self, status: TunnelStatus, public_base_url: str | None = None, **changes: object
    ) -> None:
        self._state = self._state.transition(status, public_base_url, **changes)
        logger.info(
            "Tunnel state changed",
            provider=self._state.provider.value,
            status=status.value,
            public_base_url=public_base_url,
        )

        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

        for listener in self._listeners:
            try:
                listener(self._state)
            except Exception:
                logger.exception("Tunnel state listener failed")
