"""SQLAlchemy ORM models.

Importing this module should register all tables on Base.metadata.
"""

from __future__ import annotations

from geotrack.models.location import Location, LocationGeohash
from geotrack.models.reference_geohash import CityGeohash, CountryGeohash
from geotrack.models.tracking import Tracking

__all__ = [
    "CityGeohash",
    "CountryGeohash",
    "Location",
    "LocationGeohash",
    "Tracking",
]
