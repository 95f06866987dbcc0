from __future__ import annotations

import datetime as dt

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from geotrack.db.base import Base, utcnow


class Tracking(Base):
    __tablename__ = "trackings"

    id: Mapped[int] = mapped_column(
        sa.BigInteger().with_variant(sa.Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    user_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    timestamp: Mapped[dt.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )

    # WGS84 required.
    latitude: Mapped[float] = mapped_column(sa.Float, nullable=False)
    longitude: Mapped[float] = mapped_column(sa.Float, nullable=False)

    accuracy: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    altitude: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    speed: Mapped[float | None] = mapped_column(sa.Float, nullable=True)

    geohash: Mapped[str] = mapped_column(sa.String(9), nullable=False, index=True)

    # Enrichment fields, written once by the enrichment worker (or a backfill sweep).
    city_id: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    country_id: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    location_id: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    processed_at: Mapped[dt.datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[dt.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        sa.Index("ix_trackings_user_timestamp", "user_id", "timestamp"),
    )
