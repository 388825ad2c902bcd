"""Initial attendance schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


user_role = postgresql.ENUM("EMPLOYEE", "MANAGER", "ADMIN", name="user_role", create_type=False)
fichaje_tipo = postgresql.ENUM("ENTRADA", "SALIDA", name="fichaje_tipo", create_type=False)
leave_type = postgresql.ENUM("VACATION", "SICK_LEAVE", "PERSONAL", "OTHER", name="leave_type", create_type=False)
leave_status = postgresql.ENUM("PENDING", "APPROVED", "REJECTED", name="leave_status", create_type=False)
adjustment_status = postgresql.ENUM("PENDING", "APPROVED", "REJECTED", name="adjustment_status", create_type=False)

ENUMS = (user_role, fichaje_tipo, leave_type, leave_status, adjustment_status)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("department", sa.String(length=128), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_department", "users", ["department"])

    op.create_table(
        "fichajes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("department", sa.String(length=128), nullable=False),
        sa.Column("type", fichaje_tipo, nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("work_day", sa.Date(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "work_day", "seq", name="uq_fichajes_user_day_seq"),
        sa.CheckConstraint("seq >= 1", name="ck_fichajes_seq_positive"),
    )
    op.create_index("ix_fichajes_user_ts", "fichajes", ["user_id", "ts"])
    op.create_index("ix_fichajes_department_ts", "fichajes", ["department", "ts"])

    op.create_table(
        "department_schedules",
        sa.Column("department", sa.String(length=128), nullable=False),
        sa.Column("hora_entrada", sa.String(length=5), nullable=False),
        sa.Column("hora_salida", sa.String(length=5), nullable=False),
        sa.Column("hora_entrada_tarde", sa.String(length=5), nullable=True),
        sa.Column("hora_salida_manana", sa.String(length=5), nullable=True),
        sa.Column("tolerancia_minutos", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("flexible_schedule", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("overrides_json", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("department"),
    )

    op.create_table(
        "department_shifts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("department", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("hora_entrada", sa.String(length=5), nullable=False),
        sa.Column("hora_salida", sa.String(length=5), nullable=False),
        sa.Column("tolerancia_minutos", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("active_days", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("department", "name", name="uq_department_shifts_department_name"),
        sa.CheckConstraint("tolerancia_minutos >= 0", name="ck_department_shifts_tolerance"),
    )
    op.create_index("ix_department_shifts_department", "department_shifts", ["department"])

    op.create_table(
        "leave_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("type", leave_type, nullable=False),
        sa.Column("status", leave_status, nullable=False),
        sa.Column("date_from", sa.Date(), nullable=False),
        sa.Column("date_to", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("date_to >= date_from", name="ck_leave_requests_dates"),
    )
    op.create_index("ix_leave_requests_user_dates", "leave_requests", ["user_id", "date_from", "date_to"])

    op.create_table(
        "fichaje_adjustments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("fichaje_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("original_ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("requested_ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", adjustment_status, nullable=False),
        sa.Column("manager_id", sa.Uuid(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["fichaje_id"], ["fichajes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["manager_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fichaje_adjustments_fichaje_id", "fichaje_adjustments", ["fichaje_id"])
    op.create_index("ix_fichaje_adjustments_status_created", "fichaje_adjustments", ["status", "created_at"])
    op.create_index(
        "uq_fichaje_adjustments_one_pending",
        "fichaje_adjustments",
        ["fichaje_id"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("fichaje_adjustments")
    op.drop_table("leave_requests")
    op.drop_table("department_shifts")
    op.drop_table("department_schedules")
    op.drop_table("fichajes")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
