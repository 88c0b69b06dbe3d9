import os
import tempfile

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="dockback-tests-")

os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/dockback.db"
os.environ["REDIS_URL"] = "redis://localhost:6379/0"


@pytest.fixture
def database():
    from controller.app.db import engine
    from controller.app.models import metadata

    metadata.drop_all(engine)
    metadata.create_all(engine)
    yield engine
    metadata.drop_all(engine)


@pytest.fixture
def insert_policy(database):
    from controller.app.models import backup_policies

    def insert(**values):
        row = {
            "uid": "9a5f0d3c-5b1e-4c1a-8f0e-2d7c9b6a4e10",
            "namespace": "default",
            "name": "postgres-daily-backup",
            "database_type": "postgres",
            "schedule": "0 1 * * *",
            "backup_retention_hours": 336,
            "storage_destination": {"type": "s3", "bucket": "my-database-backups", "path": "postgres/daily"},
            "target_selector": {"app": "postgres"},
            "failure_reason": "",
            "active_job_ref": "",
            "resource_version": 0,
        }
        row.update(values)
        with database.begin() as conn:
            result = conn.execute(backup_policies.insert().values(**row))
        return result.inserted_primary_key[0]

    return insert
