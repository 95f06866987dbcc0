"""Create tracking and geohash reference tables (SQLite-friendly).

Revision ID: 0001_tracking_tables
Revises:
Create Date: 2026-10-17

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision = "0001_tracking_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "trackings",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("altitude", sa.Float(), nullable=True),
        sa.Column("speed", sa.Float(), nullable=True),
        sa.Column("geohash", sa.String(9), nullable=False),
        sa.Column("city_id", sa.Integer(), nullable=True),
        sa.Column("country_id", sa.Integer(), nullable=True),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_trackings_user_id", "trackings", ["user_id"])
    op.create_index("ix_trackings_geohash", "trackings", ["geohash"])
    op.create_index(
        "ix_trackings_user_timestamp", "trackings", ["user_id", "timestamp"]
    )

    op.create_table(
        "city_geohashes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("city_id", sa.Integer(), nullable=False),
        sa.Column("geohash", sa.String(9), nullable=False),
        sa.UniqueConstraint("geohash", name="uq_city_geohashes_geohash"),
    )
    op.create_index("ix_city_geohashes_city_id", "city_geohashes", ["city_id"])

    op.create_table(
        "country_geohashes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("country_id", sa.Integer(), nullable=False),
        sa.Column("geohash", sa.String(9), nullable=False),
        sa.UniqueConstraint("geohash", name="uq_country_geohashes_geohash"),
    )
    op.create_index(
        "ix_country_geohashes_country_id", "country_geohashes", ["country_id"]
    )

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_locations_user_id", "locations", ["user_id"])

    op.create_table(
        "location_geohashes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("geohash", sa.String(9), nullable=False),
        sa.ForeignKeyConstraint(
            ["location_id"], ["locations.id"], ondelete="CASCADE"
        ),
        sa.UniqueConstraint(
            "location_id", "geohash", name="uq_location_geohashes_location_geohash"
        ),
    )
    op.create_index(
        "ix_location_geohashes_location_id", "location_geohashes", ["location_id"]
    )


def downgrade() -> None:
    op.drop_table("location_geohashes")
    op.drop_table("locations")
    op.drop_table("country_geohashes")
    op.drop_table("city_geohashes")
    op.drop_table("trackings")
