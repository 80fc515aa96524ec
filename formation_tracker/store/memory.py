"""In-process table, used for one-shot runs and as the test double."""

from __future__ import annotations

import json
from typing import Any

from .base import T, Table


class MemoryTable(Table[T]):
    """Dict-backed table.

    Documents are kept as JSON text so callers never share mutable state
    with the table, the same as with a real store.
    """

    def __init__(self, name: str, model: type[T], key_field: str) -> None:
        super().__init__(name, model, key_field)
        self._data: dict[str, str] = {}

    async def _read(self, key: str) -> dict[str, Any] | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def _write(self, key: str, document: dict[str, Any]) -> None:
        self._data[key] = json.dumps(document, ensure_ascii=False)

    async def _remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def _keys(self) -> list[str]:
        # insertion order, which keeps scans deterministic in tests
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data
