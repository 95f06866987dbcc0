from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from geotrack.db.base import Base


class CityGeohash(Base):
    """Geohash prefix covered by a city; many prefixes may map to one city."""

    __tablename__ = "city_geohashes"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    city_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    geohash: Mapped[str] = mapped_column(sa.String(9), nullable=False)

    __table_args__ = (
        sa.UniqueConstraint("geohash", name="uq_city_geohashes_geohash"),
    )


class CountryGeohash(Base):
    """Geohash prefix covered by a country."""

    __tablename__ = "country_geohashes"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    country_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    geohash: Mapped[str] = mapped_column(sa.String(9), nullable=False)

    __table_args__ = (
        sa.UniqueConstraint("geohash", name="uq_country_geohashes_geohash"),
    )
