import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

MIGRATION = Path(__file__).resolve().parent.parent / "migrations" / "versions" / "202410190001_create_posts.py"


def _load_migration():
    spec = importlib.util.spec_from_file_location("create_posts", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_create_posts_migration_round_trip():
    migration = _load_migration()
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)

    with engine.begin() as connection:
        context = MigrationContext.configure(connection)
        with Operations.context(context):
            migration.upgrade()
        columns = {column["name"] for column in inspect(connection).get_columns("posts")}
        assert columns == {"post_id", "body", "image", "created_at", "user_id"}

        with Operations.context(context):
            migration.downgrade()
        assert "posts" not in inspect(connection).get_table_names()
