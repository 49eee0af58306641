"""Recordings inventory and settings tables.

Revision ID: 0001_recordings_inventory
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_recordings_inventory"
down_revision = None
branch_labels = None
depends_on = None

_RecordingId = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "recordings",
        sa.Column("id", _RecordingId, primary_key=True, autoincrement=True),
        sa.Column("camera_id", sa.Text(), nullable=False),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("path", sa.Text(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("status", sa.Text(), nullable=False, server_default="complete"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("path", name="uq_recordings_path"),
    )
    op.create_index("idx_recordings_camera_start", "recordings", ["camera_id", "start_time"])
    op.create_index("idx_recordings_start", "recordings", ["start_time"])

    op.create_table(
        "settings",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("clean_threshold_percent", sa.Integer(), nullable=False),
        sa.Column("target_threshold_percent", sa.Integer(), nullable=False),
        sa.Column("node_name", sa.Text(), nullable=False),
        sa.Column("storage_cap_bytes", sa.BigInteger(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("settings")
    op.drop_index("idx_recordings_start", table_name="recordings")
    op.drop_index("idx_recordings_camera_start", table_name="recordings")
    op.drop_table("recordings")
