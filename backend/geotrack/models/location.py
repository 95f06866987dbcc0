from __future__ import annotations

import datetime as dt

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from geotrack.db.base import Base, utcnow


class Location(Base):
    """User-defined named location (home, office, ...)."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)

    created_at: Mapped[dt.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )

    geohashes: Mapped[list["LocationGeohash"]] = relationship(
        back_populates="location",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class LocationGeohash(Base):
    __tablename__ = "location_geohashes"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    geohash: Mapped[str] = mapped_column(sa.String(9), nullable=False)

    location: Mapped[Location] = relationship(back_populates="geohashes")

    __table_args__ = (
        sa.UniqueConstraint(
            "location_id", "geohash", name="uq_location_geohashes_location_geohash"
        ),
    )
