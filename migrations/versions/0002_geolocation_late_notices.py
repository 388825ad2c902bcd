"""Fichaje geolocation and late-arrival notices.

Revision ID: 0002_geolocation_late_notices
Revises: 0001_initial
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0002_geolocation_late_notices"
down_revision: str | None = "0001_initial"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("fichajes", sa.Column("latitude", sa.Float(), nullable=True))
    op.add_column("fichajes", sa.Column("longitude", sa.Float(), nullable=True))
    op.add_column("fichajes", sa.Column("accuracy", sa.Float(), nullable=True))

    op.create_table(
        "late_arrival_notifications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("manager_id", sa.Uuid(), nullable=True),
        sa.Column("fichaje_id", sa.Uuid(), nullable=False),
        sa.Column("fecha", sa.Date(), nullable=False),
        sa.Column("leido", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("justificado", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("justificacion_texto", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("justified_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["manager_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["fichaje_id"], ["fichajes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("fichaje_id", name="uq_late_arrival_notifications_fichaje"),
    )
    op.create_index(
        "ix_late_arrival_notifications_user_created",
        "late_arrival_notifications",
        ["user_id", "created_at"],
    )
    op.create_index(
        "ix_late_arrival_notifications_manager_created",
        "late_arrival_notifications",
        ["manager_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("late_arrival_notifications")
    op.drop_column("fichajes", "accuracy")
    op.drop_column("fichajes", "longitude")
    op.drop_column("fichajes", "latitude")
