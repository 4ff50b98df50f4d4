import importlib.util
from pathlib import Path

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

from timestables.database import Base
import timestables.models  # noqa: F401

REVISION = Path(__file__).resolve().parents[1] / "migrations" / "versions" / "001_initial.py"


def load_revision():
    spec = importlib.util.spec_from_file_location("revision_001_initial", REVISION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_upgrade_matches_models_and_downgrade_drops_everything():
    revision = load_revision()
    engine = sa.create_engine("sqlite://")

    with engine.begin() as conn:
        ctx = MigrationContext.configure(conn)
        with Operations.context(ctx):
            revision.upgrade()

        inspector = sa.inspect(conn)
        assert set(inspector.get_table_names()) == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            migrated = {c["name"] for c in inspector.get_columns(name)}
            assert migrated == {c.name for c in table.columns}, name

        unique = {i["name"] for i in inspector.get_indexes("students") if i["unique"]}
        assert "uq_students_username" in unique

        with Operations.context(ctx):
            revision.downgrade()

        assert sa.inspect(conn).get_table_names() == []
