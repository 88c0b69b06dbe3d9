import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from .db import SessionLocal
from .errors import PolicyNotFoundError, TransientStoreError, UpdateConflictError
from .models import backup_policies
from .schemas import BackupPolicy, PolicySpec, PolicyStatus, StorageDestination

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_policy(row) -> BackupPolicy:
    return BackupPolicy(
        id=row["id"],
        uid=row["uid"],
        namespace=row["namespace"],
        name=row["name"],
        resource_version=row["resource_version"],
        spec=PolicySpec(
            database_type=row["database_type"],
            schedule=row["schedule"],
            backup_retention_hours=row["backup_retention_hours"],
            storage_destination=StorageDestination(**row["storage_destination"]),
            target_selector=row["target_selector"] or {},
        ),
        status=PolicyStatus(
            last_backup_status=row["last_backup_status"] or None,
            last_successful_backup_at=_as_utc(row["last_successful_backup_at"]),
            next_scheduled_backup_at=_as_utc(row["next_scheduled_backup_at"]),
            failure_reason=row["failure_reason"] or "",
            active_job_ref=row["active_job_ref"] or "",
        ),
    )


class PolicyStore:
    """Backup policies persisted in the ``backup_policies`` table.

    Status writes are guarded by ``resource_version``: a write only lands if
    the row still carries the version the caller read, otherwise
    ``UpdateConflictError`` is raised and the caller must start over.
    """

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or SessionLocal

    def get(self, policy_id: int) -> BackupPolicy:
        try:
            with self._session_factory() as session:
                row = (
                    session.execute(select(backup_policies).where(backup_policies.c.id == policy_id))
                    .mappings()
                    .first()
                )
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"failed to read backup policy {policy_id}: {exc}") from exc
        if row is None:
            raise PolicyNotFoundError(policy_id)
        return _to_policy(row)

    def update_status(self, policy: BackupPolicy) -> BackupPolicy:
        status = policy.status
        values = {
            "last_backup_status": status.last_backup_status.value if status.last_backup_status else None,
            "last_successful_backup_at": status.last_successful_backup_at,
            "next_scheduled_backup_at": status.next_scheduled_backup_at,
            "failure_reason": status.failure_reason,
            "active_job_ref": status.active_job_ref,
            "resource_version": policy.resource_version + 1,
        }
        try:
            with self._session_factory() as session:
                result = session.execute(
                    update(backup_policies)
                    .where(
                        backup_policies.c.id == policy.id,
                        backup_policies.c.resource_version == policy.resource_version,
                    )
                    .values(**values)
                )
                if result.rowcount != 1:
                    session.rollback()
                    exists = session.execute(
                        select(backup_policies.c.id).where(backup_policies.c.id == policy.id)
                    ).first()
                    if exists is None:
                        raise PolicyNotFoundError(policy.id)
                    raise UpdateConflictError(policy.id, policy.resource_version)
                session.commit()
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"failed to write status of backup policy {policy.id}: {exc}") from exc
        policy.resource_version += 1
        return policy

    def set_requeue(self, policy_id: int, requeue_at: datetime | None, now: datetime) -> None:
        """Schedule the next pass unless an earlier one is already due.

        A ``requeue_at`` at or before ``now`` was set by someone asking for a
        prompt pass (an API edit, a manual trigger) while this pass ran, and
        is left in place so that request is not pushed back.
        """
        try:
            with self._session_factory() as session:
                session.execute(
                    update(backup_policies)
                    .where(
                        backup_policies.c.id == policy_id,
                        or_(backup_policies.c.requeue_at.is_(None), backup_policies.c.requeue_at > now),
                    )
                    .values(requeue_at=requeue_at)
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"failed to requeue backup policy {policy_id}: {exc}") from exc

    def claim_due(self, now: datetime, lease: timedelta) -> list[int]:
        """Lease every policy whose requeue time has come and return their ids.

        Each row is claimed with its own conditional update so two dispatchers
        racing over the same row never both get it.
        """
        due = or_(backup_policies.c.requeue_at.is_(None), backup_policies.c.requeue_at <= now)
        claimed = []
        try:
            with self._session_factory() as session:
                candidates = session.execute(select(backup_policies.c.id).where(due)).scalars().all()
                for policy_id in candidates:
                    result = session.execute(
                        update(backup_policies)
                        .where(backup_policies.c.id == policy_id, due)
                        .values(requeue_at=now + lease)
                    )
                    if result.rowcount == 1:
                        claimed.append(policy_id)
                session.commit()
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"failed to claim due backup policies: {exc}") from exc
        if claimed:
            logger.debug("policies_claimed count=%s", len(claimed))
        return claimed

    def list_owner_uids(self) -> set[str]:
        try:
            with self._session_factory() as session:
                return set(session.execute(select(backup_policies.c.uid)).scalars().all())
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"failed to list backup policies: {exc}") from exc
