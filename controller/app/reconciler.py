"""Reconcile loop for backup policies.

One pass reads the policy fresh from the store, folds in the outcome of the
job it launched last (if any), evaluates the cron schedule, launches at most
one new job, and reports how long the caller should wait before the next pass.
Nothing is kept in memory between passes.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .config import settings
from .errors import InvalidScheduleError, JobCreationError, JobNotFoundError, PolicyNotFoundError, ReconcileError
from .jobspec import JobSpecBuilder
from .schedule import Schedule, parse_schedule
from .schemas import BackupPolicy, BackupStatus, JobState

logger = logging.getLogger(__name__)

FAILED_JOB_REASON = "Backup job failed, check job logs for details"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconcileResult:
    status_written: bool
    requeue_after: Optional[timedelta]


class StatusWriter:
    def __init__(self, store):
        self._store = store

    def write(self, policy: BackupPolicy, reason: str) -> None:
        self._store.update_status(policy)
        status = policy.status
        logger.info(
            "status_written policy=%s reason=%s status=%s active_job=%s next=%s",
            policy.key,
            reason,
            status.last_backup_status.value if status.last_backup_status else None,
            status.active_job_ref or "-",
            status.next_scheduled_backup_at.isoformat() if status.next_scheduled_backup_at else "-",
        )


class BackupPolicyReconciler:
    def __init__(
        self,
        store,
        runner,
        builder: Optional[JobSpecBuilder] = None,
        clock: Callable[[], datetime] = utcnow,
        default_requeue: Optional[timedelta] = None,
        min_requeue: Optional[timedelta] = None,
        job_poll: Optional[timedelta] = None,
    ):
        self._store = store
        self._runner = runner
        self._builder = builder or JobSpecBuilder()
        self._clock = clock
        self._status = StatusWriter(store)
        self.default_requeue = default_requeue or timedelta(seconds=settings.default_requeue_seconds)
        self.min_requeue = min_requeue or timedelta(seconds=settings.min_requeue_seconds)
        self.job_poll = job_poll or timedelta(seconds=settings.job_poll_seconds)

    def reconcile(self, policy_id: int) -> ReconcileResult:
        now = self._clock()
        try:
            policy = self._store.get(policy_id)
        except PolicyNotFoundError:
            logger.info("policy_gone policy_id=%s", policy_id)
            return ReconcileResult(status_written=False, requeue_after=None)

        status = policy.status
        written = False

        if status.last_backup_status is None:
            status.last_backup_status = BackupStatus.pending
            self._status.write(policy, "bootstrap")
            written = True

        if status.active_job_ref:
            written = self._observe_active_job(policy, now) or written

        try:
            schedule = parse_schedule(policy.spec.schedule)
            next_run = schedule.next(now)
        except InvalidScheduleError as exc:
            logger.warning("schedule_invalid policy=%s schedule=%r error=%s", policy.key, policy.spec.schedule, exc)
            before = status.model_copy()
            status.last_backup_status = BackupStatus.error
            status.failure_reason = f"Invalid schedule: {exc.reason}"
            if status != before:
                self._status.write(policy, "invalid_schedule")
                written = True
            return ReconcileResult(status_written=written, requeue_after=self.default_requeue)

        scheduled = status.next_scheduled_backup_at
        if scheduled is None or (next_run > scheduled and (scheduled > now or status.active_job_ref)):
            if scheduled is not None and scheduled <= now:
                logger.info("run_skipped policy=%s due=%s active_job=%s", policy.key, scheduled.isoformat(), status.active_job_ref)
            status.next_scheduled_backup_at = next_run
            self._status.write(policy, "next_run_refreshed")
            written = True

        if not status.active_job_ref and self._is_due(status.next_scheduled_backup_at, now):
            self._launch(policy, schedule, now)
            written = True

        return ReconcileResult(status_written=written, requeue_after=self._requeue_after(policy, now))

    def _observe_active_job(self, policy: BackupPolicy, now: datetime) -> bool:
        status = policy.status
        job_ref = status.active_job_ref
        try:
            job = self._runner.get_job(job_ref)
        except JobNotFoundError:
            job = None

        if job is not None and job.state == JobState.running:
            return False

        if job is None:
            logger.warning("job_vanished policy=%s job=%s", policy.key, job_ref)
            status.last_backup_status = BackupStatus.failed
            status.failure_reason = f"Backup job {job_ref} disappeared before reporting completion"
        elif job.state == JobState.succeeded:
            status.last_successful_backup_at = now
            status.last_backup_status = BackupStatus.succeeded
            status.failure_reason = ""
        else:
            status.last_backup_status = BackupStatus.failed
            status.failure_reason = FAILED_JOB_REASON
        status.active_job_ref = ""
        self._status.write(policy, "job_finished")
        return True

    @staticmethod
    def _is_due(scheduled: Optional[datetime], now: datetime) -> bool:
        return scheduled is None or now >= scheduled

    def _launch(self, policy: BackupPolicy, schedule: Schedule, now: datetime) -> None:
        status = policy.status
        spec = self._builder.build(policy, now)
        try:
            job = self._runner.create_job(spec)
        except Exception as exc:  # noqa: BLE001
            logger.exception("job_create_failed policy=%s job=%s", policy.key, spec.name)
            status.last_backup_status = BackupStatus.error
            status.failure_reason = f"Failed to create backup job: {exc}"
            try:
                self._status.write(policy, "job_create_failed")
            except ReconcileError as update_exc:
                logger.error("status_update_failed policy=%s error=%s", policy.key, update_exc)
            if isinstance(exc, JobCreationError):
                raise
            raise JobCreationError(f"failed to create backup job {spec.name}: {exc}") from exc

        status.active_job_ref = job.name
        status.last_backup_status = BackupStatus.running
        status.next_scheduled_backup_at = schedule.next(now)
        self._status.write(policy, "job_started")

    def _requeue_after(self, policy: BackupPolicy, now: datetime) -> timedelta:
        status = policy.status
        if status.next_scheduled_backup_at is None:
            delay = self.default_requeue
        else:
            delay = max(status.next_scheduled_backup_at - now, self.min_requeue)
        if status.active_job_ref:
            delay = min(delay, self.job_poll)
        return delay
