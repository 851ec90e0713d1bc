from pathlib import Path

from sqlalchemy import create_engine, inspect

import app.config as config_module
from alembic import command
from alembic.config import Config

ALEMBIC_INI = Path(__file__).resolve().parents[1] / "alembic.ini"


def test_alembic_upgrade_head_on_fresh_sqlite_db(tmp_path):
    original_database_url = config_module.settings.database_url
    database_url = f"sqlite:///{tmp_path / 'fresh.db'}"
    try:
        config_module.settings.database_url = database_url

        alembic_cfg = Config(str(ALEMBIC_INI))
        command.upgrade(alembic_cfg, "head")

        engine = create_engine(database_url, connect_args={"check_same_thread": False})
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())

        assert {"users", "secrets", "access_logs"}.issubset(tables)

        slug_indexes = [i for i in inspector.get_indexes("secrets") if i["column_names"] == ["slug"]]
        assert slug_indexes and slug_indexes[0]["unique"]

        (log_fk,) = inspector.get_foreign_keys("access_logs")
        assert log_fk["referred_table"] == "secrets"
        assert log_fk["options"].get("ondelete") == "CASCADE"
        engine.dispose()
    finally:
        config_module.settings.database_url = original_database_url
