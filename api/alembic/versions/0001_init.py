"""init

Revision ID: 0001
Revises:
Create Date: 2026-10-16 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "backup_policies",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("uid", sa.String(length=36), nullable=False, unique=True),
        sa.Column("namespace", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("database_type", sa.String(length=50), nullable=False),
        sa.Column("schedule", sa.String(length=100), nullable=False),
        sa.Column("backup_retention_hours", sa.Integer, nullable=False, server_default="168"),
        sa.Column("storage_destination", sa.JSON, nullable=False),
        sa.Column("target_selector", sa.JSON, nullable=True),
        sa.Column("last_backup_status", sa.String(length=50), nullable=True),
        sa.Column("last_successful_backup_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_scheduled_backup_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("active_job_ref", sa.String(length=253), nullable=False, server_default=""),
        sa.Column("resource_version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("requeue_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("namespace", "name", name="uq_backup_policies_namespace_name"),
    )
    op.create_index("ix_backup_policies_requeue_at", "backup_policies", ["requeue_at"])


def downgrade() -> None:
    op.drop_index("ix_backup_policies_requeue_at", table_name="backup_policies")
    op.drop_table("backup_policies")
