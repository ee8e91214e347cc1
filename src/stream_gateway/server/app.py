"""aiohttp application serving registered streams with Range support."""

import asyncio
import mimetypes
import os
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import IO, Any
from urllib.parse import quote

from aiohttp import web

from ..common.logging import get_logger
from ..common.utils import mask_sensitive_data
from ..streams.models import StreamEntry
from ..streams.registry import StreamRegistry
from .ranges import ByteRange, Unsatisfiable, parse_range

logger = get_logger(__name__)

CHUNK_SIZE = 256 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Range, Content-Type, *",
    "Access-Control-Expose-Headers": "Accept-Ranges, Content-Length, Content-Range, Content-Disposition",
}

PathResolver = Callable[[str, int], Path | None]
StatusProvider = Callable[[], dict[str, Any]]


async def _add_cors_headers(request: web.Request, response: web.StreamResponse) -> None:
    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)


def _not_found() -> web.Response:
    return web.Response(status=404, text="Not found")


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE


class RangeFileServer:
    """Resolves ``/stream/{token}/{filename}`` to a file and streams it.

    The file is opened and stat'ed per request, so a file that is still being
    written by the torrent client is served at whatever size it has right now.
    """

    def __init__(
        self,
        registry: StreamRegistry,
        path_resolver: PathResolver | None = None,
        status_provider: StatusProvider | None = None,
        chunk_size: int = CHUNK_SIZE,
        max_age: timedelta | None = None,
    ):
        """Initialize the server.

        Args:
            registry: Registry consulted for every request
            path_resolver: Optional hook returning a fresh location for a
                (resource_id, sub_index) whose cached path has disappeared
            status_provider: Optional callable contributing to /health
            chunk_size: Bytes read from disk per write
            max_age: Entries older than this are answered with 404 even
                before the sweeper evicts them
        """
        self.registry = registry
        self.path_resolver = path_resolver
        self.status_provider = status_provider
        self.chunk_size = chunk_size
        self.max_age = max_age

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/stream/{token}/{filename:.+}", self.stream_file)
        app.router.add_route("OPTIONS", "/stream/{token}/{filename:.+}", self.preflight)
        app.router.add_get("/health", self.health)
        app.on_response_prepare.append(_add_cors_headers)
        return app

    async def health(self, request: web.Request) -> web.Response:
        payload: dict[str, Any] = {
            "status": "ok",
            "active_streams": len(self.registry),
        }
        if self.status_provider is not None:
            payload["tunnel"] = self.status_provider()
        return web.json_response(payload)

    async def preflight(self, request: web.Request) -> web.Response:
        return web.Response(status=204, headers={"Access-Control-Max-Age": "86400"})

    async def stream_file(self, request: web.Request) -> web.StreamResponse:
        token = request.match_info["token"]
        entry = self.registry.resolve(token, max_age=self.max_age)
        if entry is None:
            logger.debug("Unknown stream token", token=mask_sensitive_data(token))
            return _not_found()

        loop = asyncio.get_running_loop()
        file = await self._open(entry, loop)
        if file is None:
            return _not_found()

        try:
            size = os.fstat(file.fileno()).st_size
            try:
                window = parse_range(request.headers.get("Range"), size)
            except Unsatisfiable as e:
                logger.debug("Range not satisfiable", size=e.size)
                return web.Response(
                    status=416,
                    headers={"Content-Range": f"bytes */{e.size}", "Accept-Ranges": "bytes"},
                )
            return await self._send(request, entry, file, size, window, loop)
        finally:
            file.close()

    async def _open(
        self, entry: StreamEntry, loop: asyncio.AbstractEventLoop
    ) -> IO[bytes] | None:
        """Open the entry's file, consulting the path resolver once if it is gone."""
        try:
            return await loop.run_in_executor(None, open, entry.file_path, "rb")
        except FileNotFoundError:
            if self.path_resolver is None:
                logger.debug("Stream file missing", path=str(entry.file_path))
                return None
        except OSError as e:
            logger.warning("Stream file unreadable", path=str(entry.file_path), error=str(e))
            return None

        fresh_path = await loop.run_in_executor(
            None, self.path_resolver, entry.resource_id, entry.sub_index
        )
        if fresh_path is None:
            logger.debug("Stream file missing and not re-resolved", path=str(entry.file_path))
            return None

        logger.info(
            "Stream file moved",
            cached_path=str(entry.file_path),
            resolved_path=str(fresh_path),
        )
        try:
            return await loop.run_in_executor(None, open, fresh_path, "rb")
        except OSError as e:
            logger.warning("Resolved stream file unreadable", path=str(fresh_path), error=str(e))
            return None

    async def _send(
        self,
        request: web.Request,
        entry: StreamEntry,
        file: IO[bytes],
        size: int,
        window: ByteRange | None,
        loop: asyncio.AbstractEventLoop,
    ) -> web.StreamResponse:
        headers = {
            "Content-Type": guess_content_type(entry.display_name),
            "Content-Disposition": f"inline; filename*=UTF-8''{quote(entry.display_name, safe='')}",
            "Accept-Ranges": "bytes",
        }
        if window is None:
            status, offset, length = 200, 0, size
        else:
            status, offset, length = 206, window.start, window.length
            headers["Content-Range"] = window.content_range(size)

        response = web.StreamResponse(status=status, headers=headers)
        response.content_length = length
        await response.prepare(request)

        if request.method == "HEAD" or length == 0:
            await response.write_eof()
            return response

        remaining = length
        try:
            await loop.run_in_executor(None, file.seek, offset)
            while remaining > 0:
                chunk = await loop.run_in_executor(
                    None, file.read, min(self.chunk_size, remaining)
                )
                if not chunk:
                    raise OSError(f"File truncated with {remaining} bytes left to send")
                await response.write(chunk)
                remaining -= len(chunk)
        except ConnectionError:
            logger.debug("Client went away mid-stream", sent=length - remaining)
            self._abort(request)
            return response
        except OSError as e:
            logger.warning(
                "I/O error mid-stream, dropping connection",
                path=str(entry.file_path),
                sent=length - remaining,
                error=str(e),
            )
            self._abort(request)
            return response

        await response.write_eof()
        return response

    @staticmethod
    def _abort(request: web.Request) -> None:
        """Drop the connection so the client sees a short body, not a complete one."""
        protocol = request.protocol
        if protocol is not None:
            protocol.force_close()
        elif request.transport is not None:
            request.transport.close()
