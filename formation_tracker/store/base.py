"""Table: the key-value contract every persistent store implements."""

from __future__ import annotations

import abc
from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class Table(abc.ABC, Generic[T]):
    """Async key-value table of pydantic records.

    Records are stored as JSON-compatible dicts keyed by one of their
    fields (``key_field``).  Concrete backends only implement the four raw
    primitives; serialization and the bulk helpers live here.

    Each primitive is atomic per key.  Nothing spans keys: there are no
    multi-key transactions.
    """

    def __init__(self, name: str, model: type[T], key_field: str) -> None:
        self.name = name
        self._model = model
        self._key_field = key_field

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def _read(self, key: str) -> dict[str, Any] | None:
        """Return the stored document for *key*, or None."""

    @abc.abstractmethod
    async def _write(self, key: str, document: dict[str, Any]) -> None:
        """Create or replace the document stored under *key*."""

    @abc.abstractmethod
    async def _remove(self, key: str) -> None:
        """Delete *key*; deleting a missing key is not an error."""

    @abc.abstractmethod
    async def _keys(self) -> list[str]:
        """Every key currently stored."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def key_of(self, item: T) -> str:
        return str(getattr(item, self._key_field))

    async def get(self, key: str) -> T | None:
        document = await self._read(key)
        if document is None:
            return None
        return self._model.model_validate(document)

    async def put(self, item: T) -> None:
        """Upsert *item* under its key."""
        await self._write(self.key_of(item), item.model_dump(mode="json"))

    async def bulk_get(self, keys: Iterable[str]) -> list[T | None]:
        """Fetch several keys; the result is aligned with *keys*."""
        return [await self.get(key) for key in keys]

    async def delete(self, key: str) -> None:
        await self._remove(key)

    async def bulk_delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            await self._remove(key)

    async def clear(self) -> None:
        await self.bulk_delete(await self._keys())

    async def count(self) -> int:
        return len(await self._keys())

    async def scan(self, predicate: Callable[[T], bool] | None = None) -> list[T]:
        """Full-table scan, optionally filtered by *predicate*."""
        items: list[T] = []
        for key in await self._keys():
            item = await self.get(key)
            if item is None:
                continue
            if predicate is None or predicate(item):
                items.append(item)
        return items
