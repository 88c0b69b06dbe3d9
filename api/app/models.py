from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func
from .db import Base


class BackupPolicy(Base):
    __tablename__ = "backup_policies"
    __table_args__ = (UniqueConstraint("namespace", "name", name="uq_backup_policies_namespace_name"),)

    id = Column(Integer, primary_key=True)
    uid = Column(String(36), unique=True, nullable=False)
    namespace = Column(String(100), nullable=False)
    name = Column(String(200), nullable=False)
    database_type = Column(String(50), nullable=False)
    schedule = Column(String(100), nullable=False)
    backup_retention_hours = Column(Integer, nullable=False, default=168)
    storage_destination = Column(JSON, nullable=False)
    target_selector = Column(JSON, nullable=True)
    last_backup_status = Column(String(50), nullable=True)
    last_successful_backup_at = Column(DateTime(timezone=True), nullable=True)
    next_scheduled_backup_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(String(500), nullable=False, default="")
    active_job_ref = Column(String(253), nullable=False, default="")
    resource_version = Column(Integer, nullable=False, default=0)
    requeue_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
