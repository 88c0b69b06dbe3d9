import uuid
from datetime import datetime

from .config import settings
from .schemas import BackupPolicy, JobSpec, StorageType

MANAGED_BY = "dockback-controller"
LABEL_MANAGED_BY = "dockback.io/managed-by"
LABEL_OWNER_UID = "dockback.io/owner-uid"
LABEL_OWNER_NAME = "dockback.io/owner-name"
LABEL_OWNER_NAMESPACE = "dockback.io/owner-namespace"

BACKUP_MOUNT_PATH = "/backups"
CREDENTIALS_MOUNT_PATH = "/credentials"

IMAGES = {
    "postgres": "postgres-backup",
    "mysql": "mysql-backup",
    "mongodb": "mongodb-backup",
}
GENERIC_IMAGE = "generic-backup"


def backup_image(database_type: str) -> str:
    repository = IMAGES.get(database_type, GENERIC_IMAGE)
    return f"{settings.dockback_image_registry}/{repository}:{settings.dockback_image_tag}"


def job_name(policy: BackupPolicy, now: datetime) -> str:
    return f"{policy.name}-{now:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6]}"


def owner_labels(policy: BackupPolicy) -> dict[str, str]:
    return {
        LABEL_MANAGED_BY: MANAGED_BY,
        LABEL_OWNER_UID: policy.uid,
        LABEL_OWNER_NAME: policy.name,
        LABEL_OWNER_NAMESPACE: policy.namespace,
    }


class JobSpecBuilder:
    def build(self, policy: BackupPolicy, now: datetime) -> JobSpec:
        spec = policy.spec
        destination = spec.storage_destination
        environment = {
            "DB_TYPE": spec.database_type,
            "STORAGE_TYPE": destination.type,
            "BUCKET": destination.bucket,
            "STORAGE_PATH": destination.path,
            "RETENTION_HOURS": str(spec.backup_retention_hours),
            "TARGET_SELECTOR": ",".join(f"{key}={value}" for key, value in sorted(spec.target_selector.items())),
            "BACKUP_POLICY": policy.key,
        }

        volumes = {}
        if destination.type == StorageType.volume.value and destination.volume_name:
            volumes[destination.volume_name] = {"bind": BACKUP_MOUNT_PATH, "mode": "rw"}
        if destination.credentials_secret:
            volumes[destination.credentials_secret] = {"bind": CREDENTIALS_MOUNT_PATH, "mode": "ro"}

        return JobSpec(
            name=job_name(policy, now),
            image=backup_image(spec.database_type),
            environment=environment,
            volumes=volumes,
            labels=owner_labels(policy),
        )
