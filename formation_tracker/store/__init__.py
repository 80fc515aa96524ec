"""Persistent key-value tables: raw messages, formations and the two caches."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import StoreConfig
from ..models import CacheEntry, Formation, GeocacheEntry, SourceMessage
from .base import Table
from .memory import MemoryTable
from .s3 import S3Backend, S3Table

__all__ = [
    "MemoryTable",
    "S3Backend",
    "S3Table",
    "Table",
    "TrackerStore",
    "open_store",
]


@dataclass
class TrackerStore:
    """The four logical tables the tracker works with."""

    messages: Table[SourceMessage]
    formations: Table[Formation]
    geocache: Table[GeocacheEntry]
    extraction_cache: Table[CacheEntry]
    backend: S3Backend | None = None

    @classmethod
    def in_memory(cls) -> TrackerStore:
        return cls(
            messages=MemoryTable("messages", SourceMessage, "id"),
            formations=MemoryTable("formations", Formation, "id"),
            geocache=MemoryTable("geocache", GeocacheEntry, "address"),
            extraction_cache=MemoryTable("llm_cache", CacheEntry, "email_id"),
        )

    @classmethod
    def on_s3(cls, backend: S3Backend) -> TrackerStore:
        return cls(
            messages=S3Table(backend, "messages", SourceMessage, "id"),
            formations=S3Table(backend, "formations", Formation, "id"),
            geocache=S3Table(backend, "geocache", GeocacheEntry, "address"),
            extraction_cache=S3Table(backend, "llm_cache", CacheEntry, "email_id"),
            backend=backend,
        )

    async def close(self) -> None:
        if self.backend is not None:
            await self.backend.stop()


async def open_store(config: StoreConfig) -> TrackerStore:
    """Build the configured store and start its backend."""
    if config.backend == "s3":
        backend = S3Backend(config)
        await backend.start()
        return TrackerStore.on_s3(backend)
    return TrackerStore.in_memory()
