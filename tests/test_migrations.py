import importlib.util
import pathlib

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from api.app.models import BackupPolicy
from controller.app.models import backup_policies

MIGRATION = pathlib.Path(__file__).resolve().parents[1] / "api" / "alembic" / "versions" / "0001_init.py"


def load_migration():
    spec = importlib.util.spec_from_file_location("migration_0001", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_initial_migration_matches_models(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path}/migrated.db")
    migration = load_migration()

    with engine.begin() as conn:
        context = MigrationContext.configure(conn)
        with Operations.context(context):
            migration.upgrade()

    columns = {column["name"] for column in inspect(engine).get_columns("backup_policies")}
    assert columns == {column.name for column in backup_policies.columns}
    assert columns == {column.name for column in BackupPolicy.__table__.columns}

    with engine.begin() as conn:
        context = MigrationContext.configure(conn)
        with Operations.context(context):
            migration.downgrade()
    assert not inspect(engine).has_table("backup_policies")
