from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from controller.app.errors import InvalidScheduleError
from controller.app.schedule import parse_schedule
from controller.app.schemas import DatabaseType, StorageType

NAME_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"


class StorageDestinationIn(BaseModel):
    type: StorageType
    bucket: str = ""
    path: str = ""
    volume_name: str = ""
    credentials_secret: str = ""

    @model_validator(mode="after")
    def credentials_need_their_own_volume(self):
        # Both are mounted into the backup container; sharing a name would
        # replace the backup volume with the credentials mount.
        if self.volume_name and self.volume_name == self.credentials_secret:
            raise ValueError("credentials_secret must differ from volume_name")
        return self


class BackupPolicySpecIn(BaseModel):
    database_type: DatabaseType
    schedule: str
    backup_retention_hours: int = Field(168, ge=1)
    storage_destination: StorageDestinationIn
    target_selector: dict[str, str] = Field(default_factory=dict)

    @field_validator("schedule")
    @classmethod
    def schedule_must_parse(cls, value: str) -> str:
        try:
            parse_schedule(value)
        except InvalidScheduleError as exc:
            raise ValueError(str(exc)) from exc
        return value


class BackupPolicyIn(BackupPolicySpecIn):
    name: str = Field(..., max_length=200, pattern=NAME_PATTERN)
    namespace: Optional[str] = Field(None, max_length=100, pattern=NAME_PATTERN)


class BackupPolicyOut(BaseModel):
    id: int
    uid: str
    namespace: str
    name: str
    database_type: str
    schedule: str
    backup_retention_hours: int
    storage_destination: dict
    target_selector: Optional[dict[str, str]] = None
    last_backup_status: Optional[str] = None
    last_successful_backup_at: Optional[datetime] = None
    next_scheduled_backup_at: Optional[datetime] = None
    failure_reason: str = ""
    active_job_ref: str = ""
    resource_version: int

    class Config:
        from_attributes = True
