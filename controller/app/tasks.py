from datetime import timedelta

from celery.utils.log import get_task_logger
from docker.errors import DockerException

from .celery_app import celery_app
from .config import settings
from .docker_client import DockerJobRunner
from .errors import ReconcileError
from .reconciler import BackupPolicyReconciler, utcnow
from .store import PolicyStore

logger = get_task_logger(__name__)


def build_reconciler() -> BackupPolicyReconciler:
    return BackupPolicyReconciler(PolicyStore(), DockerJobRunner())


@celery_app.task(
    name="controller.tasks.reconcile_policy",
    autoretry_for=(ReconcileError, DockerException),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 8},
)
def reconcile_policy(policy_id: int):
    result = build_reconciler().reconcile(policy_id)
    if result.requeue_after is None:
        return {"policy_id": policy_id, "status_written": result.status_written, "requeue_after": None}
    now = utcnow()
    PolicyStore().set_requeue(policy_id, now + result.requeue_after, now)
    seconds = result.requeue_after.total_seconds()
    logger.info("policy_requeued policy_id=%s after=%.0fs", policy_id, seconds)
    return {"policy_id": policy_id, "status_written": result.status_written, "requeue_after": seconds}


@celery_app.task(name="controller.tasks.dispatch_due_policies")
def dispatch_due_policies():
    lease = timedelta(seconds=settings.dispatch_lease_seconds)
    claimed = PolicyStore().claim_due(utcnow(), lease)
    for policy_id in claimed:
        reconcile_policy.delay(policy_id)
    return {"dispatched": claimed}


@celery_app.task(name="controller.tasks.collect_orphaned_jobs")
def collect_orphaned_jobs():
    live_uids = PolicyStore().list_owner_uids()
    try:
        removed = DockerJobRunner().collect_orphans(live_uids)
    except DockerException:
        logger.exception("Orphan collection failed")
        raise
    return {"removed": removed}
