from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update

from controller.app.models import backup_policies


class FakeContainer:
    def __init__(self, name, labels):
        self.name = name
        self.labels = labels
        self.status = "running"
        self.attrs = {"State": {"Status": "running", "ExitCode": 0}}
        self.removed = False

    def finish(self, exit_code):
        self.status = "exited"
        self.attrs = {"State": {"Status": "exited", "ExitCode": exit_code}}

    def remove(self, force=False):
        self.removed = True


class FakeContainers:
    def __init__(self):
        self.by_name = {}

    def run(self, image, name, detach, environment, volumes, labels):
        container = FakeContainer(name, labels)
        self.by_name[name] = container
        return container

    def get(self, name):
        from docker.errors import NotFound

        if name not in self.by_name:
            raise NotFound(name)
        return self.by_name[name]

    def list(self, all=False, filters=None):
        return list(self.by_name.values())


class FakeClient:
    def __init__(self):
        self.containers = FakeContainers()


def read_row(database, policy_id):
    with database.connect() as conn:
        return conn.execute(select(backup_policies).where(backup_policies.c.id == policy_id)).mappings().one()


def test_reconcile_task_runs_and_observes_a_backup(monkeypatch, database, insert_policy):
    client = FakeClient()
    monkeypatch.setattr("controller.app.docker_client.docker.DockerClient", lambda base_url: client)
    yesterday = datetime.now(timezone.utc) - timedelta(days=1)
    policy_id = insert_policy(last_backup_status="Succeeded", next_scheduled_backup_at=yesterday)

    from controller.app.tasks import reconcile_policy

    result = reconcile_policy(policy_id)

    row = read_row(database, policy_id)
    assert result["status_written"]
    assert 0 < result["requeue_after"] <= 30
    assert row["last_backup_status"] == "Running"
    assert row["active_job_ref"] in client.containers.by_name
    assert row["requeue_at"] is not None
    assert row["resource_version"] == 1

    client.containers.by_name[row["active_job_ref"]].finish(exit_code=0)
    reconcile_policy(policy_id)

    row = read_row(database, policy_id)
    assert row["last_backup_status"] == "Succeeded"
    assert row["active_job_ref"] == ""
    assert row["last_successful_backup_at"] is not None
    assert len(client.containers.by_name) == 1


def test_reconcile_task_for_deleted_policy(database):
    from controller.app.tasks import reconcile_policy

    assert reconcile_policy(12345) == {"policy_id": 12345, "status_written": False, "requeue_after": None}


def test_dispatch_enqueues_due_policies(monkeypatch, insert_policy):
    from controller.app import tasks

    due = insert_policy(uid="uid-due", name="due", requeue_at=None)
    insert_policy(uid="uid-later", name="later", requeue_at=datetime.now(timezone.utc) + timedelta(hours=1))
    queued = []
    monkeypatch.setattr(tasks.reconcile_policy, "delay", lambda policy_id: queued.append(policy_id))

    result = tasks.dispatch_due_policies()

    assert result == {"dispatched": [due]}
    assert queued == [due]


def test_collect_orphaned_jobs(monkeypatch, insert_policy):
    from controller.app import tasks
    from controller.app.jobspec import LABEL_OWNER_UID

    insert_policy(uid="uid-live")
    client = FakeClient()
    live = client.containers.run("img", "live-job", True, {}, {}, {LABEL_OWNER_UID: "uid-live"})
    orphan = client.containers.run("img", "orphan-job", True, {}, {}, {LABEL_OWNER_UID: "uid-gone"})
    monkeypatch.setattr("controller.app.docker_client.docker.DockerClient", lambda base_url: client)

    result = tasks.collect_orphaned_jobs()

    assert result == {"removed": ["orphan-job"]}
    assert orphan.removed
    assert not live.removed


def test_edit_during_a_pass_is_not_pushed_back(monkeypatch, database, insert_policy):
    from controller.app import tasks
    from controller.app.reconciler import BackupPolicyReconciler

    client = FakeClient()
    monkeypatch.setattr("controller.app.docker_client.docker.DockerClient", lambda base_url: client)
    policy_id = insert_policy(requeue_at=datetime.now(timezone.utc) + timedelta(minutes=5))
    original = BackupPolicyReconciler.reconcile

    def reconcile_then_edit(self, policy_id):
        result = original(self, policy_id)
        # The API commits a new schedule after the pass read the old one.
        with database.begin() as conn:
            conn.execute(
                update(backup_policies)
                .where(backup_policies.c.id == policy_id)
                .values(
                    schedule="*/5 * * * *",
                    resource_version=backup_policies.c.resource_version + 1,
                    requeue_at=datetime.now(timezone.utc),
                )
            )
        return result

    monkeypatch.setattr(BackupPolicyReconciler, "reconcile", reconcile_then_edit)

    result = tasks.reconcile_policy(policy_id)

    row = read_row(database, policy_id)
    assert result["requeue_after"] >= 1
    assert row["schedule"] == "*/5 * * * *"
    assert row["requeue_at"].replace(tzinfo=timezone.utc) <= datetime.now(timezone.utc)
