from sqlalchemy import Table, Column, Integer, String, MetaData, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from .schemas import FAILURE_REASON_MAX_LENGTH

metadata = MetaData()

backup_policies = Table(
    "backup_policies",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("uid", String(36), nullable=False, unique=True),
    Column("namespace", String(100), nullable=False),
    Column("name", String(200), nullable=False),
    Column("database_type", String(50), nullable=False),
    Column("schedule", String(100), nullable=False),
    Column("backup_retention_hours", Integer, nullable=False),
    Column("storage_destination", JSON, nullable=False),
    Column("target_selector", JSON, nullable=True),
    Column("last_backup_status", String(50), nullable=True),
    Column("last_successful_backup_at", DateTime(timezone=True), nullable=True),
    Column("next_scheduled_backup_at", DateTime(timezone=True), nullable=True),
    Column("failure_reason", String(FAILURE_REASON_MAX_LENGTH), nullable=False, default=""),
    Column("active_job_ref", String(253), nullable=False, default=""),
    Column("resource_version", Integer, nullable=False, default=0),
    Column("requeue_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    UniqueConstraint("namespace", "name", name="uq_backup_policies_namespace_name"),
)
