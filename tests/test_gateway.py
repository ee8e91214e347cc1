"""End-to-end tests for GatewayFacade over a real socket."""

import socket
from datetime import UTC, datetime, timedelta

import aiohttp
import pytest

from stream_gateway.common.exceptions import GatewayStartupError
from stream_gateway.config import GatewayConfig
from stream_gateway.gateway import GatewayFacade
from stream_gateway.streams.models import StreamEntry, StreamFile
from stream_gateway.tunnel.models import TunnelStatus

TUNNEL_SCRIPT = """
import sys, time
print("connecting to edge", flush=True)
print("tunnel ready at https://gw-" + sys.argv[1] + ".fake-tunnel.test", flush=True)
time.sleep(60)
"""


@pytest.fixture
def config():
    return GatewayConfig(host="127.0.0.1", port=0, secret="gateway-secret")


@pytest.fixture
async def gateway(config):
    facade = GatewayFacade(config)
    await facade.start()
    yield facade
    await facade.stop()


@pytest.fixture
async def http():
    async with aiohttp.ClientSession() as session:
        yield session


def local_url(gateway, stream_url):
    """Rewrite a stream link onto the loopback listener."""
    path = stream_url.split("/stream/", 1)[1]
    return f"http://127.0.0.1:{gateway.port}/stream/{path}"


class TestGatewayStreaming:
    """Test cases for serving registered files through the facade"""

    async def test_binds_free_port(self, gateway):
        assert gateway.port != 0
        assert gateway.tunnel_state.status == TunnelStatus.DISABLED

    async def test_register_uses_fallback_base(self, gateway, media_file):
        path, _ = media_file
        url = gateway.register_stream("a1b2c3", 0, path, "movie.mp4")

        assert url.startswith(f"http://127.0.0.1:{gateway.port}/stream/")
        assert url.endswith("/movie.mp4")
        assert gateway.current_public_base_url() is None

    async def test_configured_base_url_is_used(self, media_file):
        path, _ = media_file
        config = GatewayConfig(
            host="127.0.0.1", port=0, base_url="https://files.example.com/"
        )
        async with GatewayFacade(config) as facade:
            url = facade.register_stream("a1b2c3", 1, path, "My Movie.mp4")

        assert url.startswith("https://files.example.com/stream/")
        assert url.endswith("/My%20Movie.mp4")

    async def test_range_request_end_to_end(self, gateway, http, media_file):
        """A 1 MiB window out of a 10 MB file comes back byte-exact"""
        path, content = media_file
        url = gateway.register_stream("a1b2c3", 0, path, "movie.mp4")

        async with http.get(
            local_url(gateway, url), headers={"Range": "bytes=1048576-2097151"}
        ) as resp:
            body = await resp.read()
            assert resp.status == 206
            assert resp.headers["Content-Length"] == "1048576"
            assert resp.headers["Content-Range"] == f"bytes 1048576-2097151/{len(content)}"
            assert resp.headers["Content-Type"] == "video/mp4"

        assert body == content[1048576:2097152]

    async def test_full_download(self, gateway, http, media_file):
        path, content = media_file
        url = gateway.register_stream("a1b2c3", 0, path, "movie.mp4")

        async with http.get(local_url(gateway, url)) as resp:
            body = await resp.read()
            assert resp.status == 200

        assert body == content

    async def test_name_inside_folder_is_one_segment(self, gateway, http, tmp_path):
        """A display name with a slash still yields a working link"""
        path = tmp_path / "ep1.mkv"
        path.write_bytes(b"episode one")
        url = gateway.register_stream("a1b2c3", 2, path, "Show S01/ep1.mkv")

        assert url.endswith("/Show%20S01%2Fep1.mkv")
        async with http.get(local_url(gateway, url)) as resp:
            assert resp.status == 200
            assert await resp.read() == b"episode one"

    async def test_expired_stream_is_not_served(self, gateway, http, tmp_path):
        """Entries past the configured max age are refused before the sweeper runs"""
        path = tmp_path / "old.mkv"
        path.write_bytes(b"stale")
        entry = StreamEntry(
            token=gateway.codec.generate("a1b2c3", 0),
            resource_id="a1b2c3",
            sub_index=0,
            file_path=path,
            display_name="old.mkv",
            created_at=datetime.now(UTC) - timedelta(days=30),
        )
        gateway.registry.register(entry)
        url = gateway.build_url(entry.token, entry.display_name)

        async with http.get(local_url(gateway, url)) as resp:
            assert resp.status == 404
        assert len(gateway.registry) == 1

    async def test_unknown_token(self, gateway, http):
        async with http.get(
            f"http://127.0.0.1:{gateway.port}/stream/0000000000000000/x.mp4"
        ) as resp:
            assert resp.status == 404

    async def test_health_reports_streams_and_tunnel(self, gateway, http, media_file):
        path, _ = media_file
        gateway.register_stream("a1b2c3", 0, path, "movie.mp4")

        async with http.get(f"http://127.0.0.1:{gateway.port}/health") as resp:
            payload = await resp.json()

        assert payload["status"] == "ok"
        assert payload["active_streams"] == 1
        assert payload["tunnel"]["status"] == "disabled"


class TestRegisterResource:
    """Test cases for GatewayFacade.register_resource"""

    async def test_small_files_are_skipped(self, gateway, media_file, tmp_path):
        path, _ = media_file
        sample = tmp_path / "sample.txt"
        sample.write_bytes(b"x" * 100)

        urls = gateway.register_resource(
            "a1b2c3",
            [
                StreamFile(index=0, path=path, display_name="movie.mp4", size=10 * 1024 * 1024),
                {"index": 1, "path": sample, "display_name": "sample.txt", "size": 100},
            ],
        )

        assert list(urls) == [0]
        assert len(gateway.registry) == 1

    async def test_min_size_override(self, gateway, tmp_path):
        sample = tmp_path / "sample.txt"
        sample.write_bytes(b"x" * 100)

        urls = gateway.register_resource(
            "a1b2c3",
            [{"index": 3, "path": sample, "display_name": "sample.txt", "size": 100}],
            min_size=0,
        )

        assert list(urls) == [3]
        assert urls[3].endswith("/sample.txt")


class TestGatewayTunnel:
    """Test cases for the facade with a tunnel provider"""

    async def test_links_use_public_url_once_established(
        self, config, script_provider, media_file
    ):
        path, _ = media_file
        provider = script_provider(TUNNEL_SCRIPT)
        async with GatewayFacade(config, provider=provider) as facade:
            public = await facade.tunnel.wait_established(timeout=10)

            assert public == f"https://gw-{facade.port}.fake-tunnel.test"
            assert facade.current_public_base_url() == public
            url = facade.register_stream("a1b2c3", 0, path, "movie.mp4")
            assert url.startswith(f"{public}/stream/")

        assert facade.tunnel_state.status == TunnelStatus.DISABLED
        assert facade.current_public_base_url() is None

    async def test_bind_failure(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen()
            port = taken.getsockname()[1]

            facade = GatewayFacade(GatewayConfig(host="127.0.0.1", port=port))
            with pytest.raises(GatewayStartupError, match="Cannot bind"):
                await facade.start()
