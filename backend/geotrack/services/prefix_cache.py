from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass


@dataclass(frozen=True)
class CacheEntry:
    """Cached answer for a geohash prefix.

    region_id=None is an explicit negative: no reference row covers this cell.
    """

    prefix: str
    region_id: int | None

    @property
    def is_negative(self) -> bool:
        return self.region_id is None


class PrefixCache:
    """Append-only geohash prefix cache resolved by longest matching prefix.

    Entries are keyed by (scope, prefix). City/country caches use scope=None;
    the named-location cache scopes entries by user id so one user's locations
    never answer another user's lookups.

    Inserts are insert-if-absent (``dict.setdefault`` is atomic) and lookups scan
    a snapshot of the entries, so concurrent writers only race benignly.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[tuple[Hashable, str], CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, geohash: str, *, scope: Hashable = None) -> CacheEntry | None:
        """Return the entry of the longest cached prefix of geohash, or None on miss."""

        best: CacheEntry | None = None
        # Linear scan; reference tables hold at most a few thousand prefixes.
        for (entry_scope, prefix), entry in list(self._entries.items()):
            if entry_scope != scope or not geohash.startswith(prefix):
                continue
            if best is None or len(prefix) > len(best.prefix):
                best = entry
        return best

    def record_positive(
        self, prefix: str, region_id: int, *, scope: Hashable = None
    ) -> CacheEntry:
        return self._entries.setdefault(
            (scope, prefix), CacheEntry(prefix=prefix, region_id=region_id)
        )

    def record_negative(self, prefix: str, *, scope: Hashable = None) -> CacheEntry:
        return self._entries.setdefault(
            (scope, prefix), CacheEntry(prefix=prefix, region_id=None)
        )
