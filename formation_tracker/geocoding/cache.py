"""Geocoding cache: address → coordinates, keyed by a normalized address.

The key depends on the address only, never on the provider, so switching
providers keeps every cached entry valid.  Unresolvable addresses are
cached too (``coordinates=None``) and are not looked up again until
:meth:`GeocodingCache.clear_failed_entries` drops them.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Callable, Iterable

import structlog
from pydantic import BaseModel

from ..errors import StoreError
from ..models import Coordinates, Formation, GeocacheEntry
from ..store.base import Table
from .base import GeocodingProvider, GeocodingResult

logger = structlog.get_logger()

_PUNCTUATION = re.compile(r"[.,;:()\[\]{}\"“”«»'’!?/\\]")
_WHITESPACE = re.compile(r"\s+")

#: Training centres with well-known coordinates.
KNOWN_LOCATIONS: dict[str, Coordinates] = {
    "Centre de formation ORSYS Paroi Nord Grande Arche 1 parvis de la Défense 92044 Paris La Defense": Coordinates(
        lat=48.8925, lng=2.2356
    ),
    "ORSYS Paris La Défense": Coordinates(lat=48.8925, lng=2.2356),
    "ORSYS La Défense": Coordinates(lat=48.8925, lng=2.2356),
    "ORSYS Lyon": Coordinates(lat=45.764, lng=4.8357),
    "ORSYS Aix-en-Provence": Coordinates(lat=43.5297, lng=5.4474),
    "ORSYS Sophia Antipolis": Coordinates(lat=43.6163, lng=7.0551),
    "ORSYS Strasbourg": Coordinates(lat=48.5734, lng=7.7521),
    "ORSYS Toulouse": Coordinates(lat=43.6047, lng=1.4442),
    "ORSYS Nantes": Coordinates(lat=47.2184, lng=-1.5536),
    "ORSYS Lille": Coordinates(lat=50.6292, lng=3.0573),
    "ORSYS Bordeaux": Coordinates(lat=44.8378, lng=-0.5792),
}

PRESET_PROVIDER = "preset"


def normalize_address(address: str) -> str:
    """Cache key for *address*: lowercase, no accents, no punctuation, single spaces.

    Idempotent: ``normalize_address(normalize_address(x)) == normalize_address(x)``.
    """
    decomposed = unicodedata.normalize("NFD", address.strip().lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE.sub(" ", _PUNCTUATION.sub(" ", stripped)).strip()


def _collapse_whitespace(address: str) -> str:
    return " ".join(address.split())


class GeocacheStats(BaseModel):
    total: int
    with_coords: int
    without_coords: int


class GeocodingCache:
    """Memoizing front of the active :class:`GeocodingProvider`."""

    def __init__(self, table: Table[GeocacheEntry], provider: GeocodingProvider) -> None:
        self._table = table
        self._provider = provider

    @property
    def provider(self) -> GeocodingProvider:
        return self._provider

    async def _lookup(self, key: str) -> GeocacheEntry | None:
        try:
            return await self._table.get(key)
        except StoreError as exc:
            logger.error("geocache_read_failed", address=key, error=str(exc))
            return None

    async def _remember(self, key: str, coordinates: Coordinates | None) -> None:
        entry = GeocacheEntry(address=key, coordinates=coordinates, provider=self._provider.name)
        try:
            await self._table.put(entry)
        except StoreError as exc:
            logger.error("geocache_write_failed", address=key, error=str(exc))

    async def resolve(self, address: str) -> Coordinates | None:
        """Coordinates of *address*, from the cache or the provider.

        A cache hit, a cached failure included, never reaches the provider.
        On a miss the provider gets the original address (whitespace
        collapsed) and its answer, None included, is cached.
        """
        key = normalize_address(address)
        if not key:
            return None

        cached = await self._lookup(key)
        if cached is not None:
            logger.debug("geocache_hit", address=key, found=cached.coordinates is not None)
            return cached.coordinates

        result = await self._provider.geocode(_collapse_whitespace(address))
        await self._remember(key, result.coordinates)
        logger.info(
            "address_geocoded",
            address=key,
            provider=self._provider.name,
            found=result.coordinates is not None,
        )
        return result.coordinates

    async def resolve_batch(
        self,
        addresses: Iterable[str],
        on_progress: Callable[[int, int], None] | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> dict[str, Coordinates | None]:
        """Resolve *addresses* one after the other.

        Sequential on purpose: the free provider allows one request per
        second.  Stops early, keeping what was resolved, once *should_stop*
        returns True.
        """
        pending = list(addresses)
        results: dict[str, Coordinates | None] = {}
        for index, address in enumerate(pending, start=1):
            if should_stop is not None and should_stop():
                logger.info("geocode_batch_stopped", done=index - 1, total=len(pending))
                break
            results[address] = await self.resolve(address)
            if on_progress is not None:
                on_progress(index, len(pending))
        return results

    async def geocode_uncached(self, address: str) -> GeocodingResult:
        """Ask the provider directly, leaving the cache untouched."""
        return await self._provider.geocode(address)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def clear_failed_entries(self) -> int:
        """Drop cached failures so those addresses are retried; keep successes."""
        failed = await self._table.scan(lambda entry: entry.coordinates is None)
        await self._table.bulk_delete(entry.address for entry in failed)
        if failed:
            logger.info("geocache_failures_cleared", count=len(failed))
        return len(failed)

    async def clear_all(self) -> None:
        await self._table.clear()

    async def stats(self) -> GeocacheStats:
        entries = await self._table.scan()
        with_coords = sum(1 for entry in entries if entry.coordinates is not None)
        return GeocacheStats(
            total=len(entries),
            with_coords=with_coords,
            without_coords=len(entries) - with_coords,
        )

    async def preload_known_locations(self) -> int:
        """Seed the cache with :data:`KNOWN_LOCATIONS`; existing keys are left alone."""
        count = 0
        for address, coordinates in KNOWN_LOCATIONS.items():
            key = normalize_address(address)
            if await self._table.get(key) is not None:
                continue
            await self._table.put(
                GeocacheEntry(address=key, coordinates=coordinates, provider=PRESET_PROVIDER)
            )
            count += 1
        logger.info("known_locations_preloaded", count=count)
        return count

    async def update_entry_coordinates(self, address: str, coordinates: Coordinates) -> None:
        """Manually correct the coordinates of an existing entry."""
        key = normalize_address(address)
        existing = await self._table.get(key)
        if existing is None:
            raise KeyError(f"No geocache entry for {key!r}")
        await self._table.put(existing.model_copy(update={"coordinates": coordinates}))

    async def reapply_to_formations(self, formations: Table[Formation]) -> int:
        """Copy cached coordinates onto formations whose coordinates differ.

        Cancelled formations and cached failures are skipped.  Returns the
        number of formations written.
        """
        updated = 0
        for formation in await formations.scan(lambda f: not f.is_cancelled):
            key = normalize_address(formation.location.address or formation.location.name)
            if not key:
                continue
            entry = await self._table.get(key)
            if entry is None or entry.coordinates is None:
                continue
            if formation.location.coordinates == entry.coordinates:
                continue
            location = formation.location.model_copy(update={"coordinates": entry.coordinates})
            await formations.put(formation.model_copy(update={"location": location}))
            updated += 1
        logger.info("geocache_reapplied", updated=updated)
        return updated
