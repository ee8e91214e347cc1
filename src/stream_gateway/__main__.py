"""Run the streaming gateway standalone, configured from the environment."""

import asyncio
import signal
import sys

from dotenv import load_dotenv

from .common.exceptions import ConfigurationError, GatewayStartupError
from .common.logging import get_logger, setup_logging
from .config import GatewayConfig, LoggingConfig
from .gateway import GatewayFacade
from .tunnel.models import TunnelState

logger = get_logger("stream_gateway")


def _log_tunnel_state(state: TunnelState) -> None:
    if state.public_base_url:
        logger.info("Public URL available", url=state.public_base_url)


async def serve(config: GatewayConfig) -> None:
    """Run until SIGINT or SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # not available on Windows event loops
            pass

    async with GatewayFacade(config) as gateway:
        if gateway.tunnel is not None:
            gateway.tunnel.add_listener(_log_tunnel_state)
            url = await gateway.tunnel.wait_established(config.tunnel_establish_timeout)
            if url is None:
                logger.warning("Continuing without tunnel", base_url=gateway.base_url())
        logger.info("Gateway ready", base_url=gateway.base_url())
        await stop.wait()
        logger.info("Shutting down")


def main() -> int:
    load_dotenv()
    try:
        log_config = LoggingConfig.from_env()
        setup_logging(
            level=log_config.level,
            json_format=log_config.json_format,
            log_file=log_config.log_file,
        )
        config = GatewayConfig.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        asyncio.run(serve(config))
    except GatewayStartupError as e:
        logger.error("Gateway failed to start", error=str(e))
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
