from __future__ import annotations

"""Stdlib-only geohash encoding.

Fixes are stored at precision=9 (~5m cell); shorter prefixes are the coarser
cells used for city/country/location matching.
"""

from collections.abc import Iterable

_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"

DEFAULT_PRECISION = 9


def encode(latitude: float, longitude: float, *, precision: int = DEFAULT_PRECISION) -> str:
    if precision <= 0:
        raise ValueError("precision must be > 0")

    lat_min, lat_max = -90.0, 90.0
    lon_min, lon_max = -180.0, 180.0

    bits = [16, 8, 4, 2, 1]
    bit = 0
    ch = 0
    even = True
    out: list[str] = []

    while len(out) < precision:
        if even:
            mid = (lon_min + lon_max) / 2.0
            if longitude >= mid:
                ch |= bits[bit]
                lon_min = mid
            else:
                lon_max = mid
        else:
            mid = (lat_min + lat_max) / 2.0
            if latitude >= mid:
                ch |= bits[bit]
                lat_min = mid
            else:
                lat_max = mid

        even = not even
        if bit < 4:
            bit += 1
            continue

        out.append(_BASE32[ch])
        bit = 0
        ch = 0

    return "".join(out)


def ancestors(geohash: str, lengths: Iterable[int]) -> list[str]:
    """Return the prefixes of geohash at the given lengths, in the given order.

    Lengths longer than the geohash itself are skipped.
    """

    return [geohash[:n] for n in lengths if 0 < n <= len(geohash)]
