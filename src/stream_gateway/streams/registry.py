"""In-memory registry of active streams keyed by token."""

import asyncio
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import MappingProxyType

from ..common.logging import get_logger
from ..common.utils import mask_sensitive_data
from .models import StreamEntry
from .token import TokenCodec

logger = get_logger(__name__)


class StreamRegistry:
    """Token to StreamEntry map for read-heavy, write-light access.

    Writers (register, unregister, sweep) serialize on an internal lock and
    publish a complete new mapping by swapping a single reference. Readers
    never take the lock: they look up in whichever mapping is current, so a
    concurrent resolve sees either the old entry or none, never a torn one.
    """

    def __init__(self, codec: TokenCodec):
        self.codec = codec
        self._entries: MappingProxyType[str, StreamEntry] = MappingProxyType({})
        self._write_lock = threading.Lock()

    def register(self, entry: StreamEntry) -> str:
        """Insert or replace an entry.

        Args:
            entry: Stream entry whose token must match its (resource_id, sub_index)

        Returns:
            The entry's token

        Raises:
            ValueError: If the token was not derived from this registry's secret
        """
        if not self.codec.verify(entry.token, entry.resource_id, entry.sub_index):
            raise ValueError(
                f"Token does not match resource {entry.resource_id} index {entry.sub_index}"
            )

        with self._write_lock:
            updated = dict(self._entries)
            replaced = entry.token in updated
            updated[entry.token] = entry
            self._entries = MappingProxyType(updated)

        logger.info(
            "Registered stream",
            token=mask_sensitive_data(entry.token),
            resource_id=entry.resource_id,
            sub_index=entry.sub_index,
            replaced=replaced,
        )
        return entry.token

    def register_file(
        self,
        resource_id: str,
        sub_index: int,
        file_path: str | Path,
        display_name: str,
    ) -> StreamEntry:
        """Build a fresh entry for a file and register it.

        Returns:
            The registered entry
        """
        entry = StreamEntry(
            token=self.codec.generate(resource_id, sub_index),
            resource_id=resource_id,
            sub_index=sub_index,
            file_path=Path(file_path),
            display_name=display_name,
        )
        self.register(entry)
        return entry

    def resolve(
        self,
        token: str,
        max_age: timedelta | None = None,
        now: datetime | None = None,
    ) -> StreamEntry | None:
        """Look up an entry; None means not found and is authoritative.

        Args:
            token: Stream token
            max_age: If given, an entry older than this is treated as absent
                even before the sweeper has removed it
            now: Reference time for the age check, defaults to the current UTC time
        """
        entry = self._entries.get(token)
        if entry is None or max_age is None:
            return entry
        if entry.age(now) > max_age:
            return None
        return entry

    def unregister(self, token: str) -> bool:
        """Remove an entry.

        Returns:
            True if an entry was removed
        """
        with self._write_lock:
            if token not in self._entries:
                return False
            updated = dict(self._entries)
            del updated[token]
            self._entries = MappingProxyType(updated)

        logger.info("Unregistered stream", token=mask_sensitive_data(token))
        return True

    def sweep(self, max_age: timedelta, now: datetime | None = None) -> int:
        """Drop entries older than max_age.

        Args:
            max_age: Maximum age an entry may reach before eviction
            now: Reference time, defaults to the current UTC time

        Returns:
            Number of entries removed
        """
        now = now or datetime.now(UTC)
        with self._write_lock:
            current = self._entries
            kept = {
                token: entry
                for token, entry in current.items()
                if entry.age(now) <= max_age
            }
            removed = len(current) - len(kept)
            if removed:
                self._entries = MappingProxyType(kept)

        if removed:
            logger.info("Swept expired streams", removed=removed, remaining=len(kept))
        return removed

    def clear(self) -> None:
        """Remove every entry."""
        with self._write_lock:
            self._entries = MappingProxyType({})
        logger.info("Cleared stream registry")

    async def run_sweeper(self, interval: float, max_age: timedelta) -> None:
        """Sweep on a fixed interval until cancelled."""
        logger.debug("Stream sweeper started", interval=interval, max_age=str(max_age))
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep(max_age)
            except Exception:
                logger.exception("Stream sweep failed")

    def __len__(self) -> int:
        return len(self._entries)
