from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

FAILURE_REASON_MAX_LENGTH = 500


class DatabaseType(str, Enum):
    postgres = "postgres"
    mysql = "mysql"
    mongodb = "mongodb"


class StorageType(str, Enum):
    s3 = "s3"
    gcs = "gcs"
    volume = "volume"


class BackupStatus(str, Enum):
    pending = "Pending"
    running = "Running"
    succeeded = "Succeeded"
    failed = "Failed"
    error = "Error"


class JobState(str, Enum):
    running = "Running"
    succeeded = "Succeeded"
    failed = "Failed"


class StorageDestination(BaseModel):
    type: str
    bucket: str = ""
    path: str = ""
    volume_name: str = ""
    credentials_secret: str = ""


class PolicySpec(BaseModel):
    # Plain strings: rows written by older API versions may carry values the
    # enums no longer list, and those must still reconcile.
    database_type: str
    schedule: str
    backup_retention_hours: int = 168
    storage_destination: StorageDestination
    target_selector: dict[str, str] = Field(default_factory=dict)


class PolicyStatus(BaseModel):
    last_backup_status: Optional[BackupStatus] = None
    last_successful_backup_at: Optional[datetime] = None
    next_scheduled_backup_at: Optional[datetime] = None
    failure_reason: str = ""
    active_job_ref: str = ""

    class Config:
        validate_assignment = True

    @field_validator("failure_reason")
    @classmethod
    def clip_failure_reason(cls, value: str) -> str:
        if len(value) <= FAILURE_REASON_MAX_LENGTH:
            return value
        return value[: FAILURE_REASON_MAX_LENGTH - 3] + "..."


class BackupPolicy(BaseModel):
    id: int
    uid: str
    namespace: str
    name: str
    resource_version: int = 0
    spec: PolicySpec
    status: PolicyStatus = Field(default_factory=PolicyStatus)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


class Job(BaseModel):
    name: str
    state: JobState
    owner_uid: str = ""


class JobSpec(BaseModel):
    name: str
    image: str
    environment: dict[str, str]
    volumes: dict[str, dict[str, str]] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
