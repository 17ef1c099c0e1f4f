"""
Startup helpers against the process-wide engine (in-memory SQLite under test).
"""
from sqlalchemy import text

from app.database import migration
from app.database.database import Base, engine, test_connection as check_connection


class TestStartup:
    def test_connection_check(self):
        assert check_connection() is True

    def test_migration_is_idempotent(self):
        migration.run_migration()
        migration.run_migration()

        assert migration.has_column("expenses", "version_id")
        assert migration.has_column("companies", "receipt_min_amount")

    def test_missing_column_is_added(self, monkeypatch):
        migration.create_tables_if_not_exist()
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE IF NOT EXISTS legacy_audit (id INTEGER PRIMARY KEY)"))
        monkeypatch.setattr(migration, "_column_cache", {})

        migration.add_column_if_not_exists("legacy_audit", "note", "TEXT")

        assert migration.has_column("legacy_audit", "note")

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    def test_expected_columns_match_the_models(self):
        for table_name, columns in migration.EXPECTED_COLUMNS.items():
            model_columns = set(Base.metadata.tables[table_name].columns.keys())
            assert set(columns) <= model_columns, table_name

    def test_plan_snapshot_and_ocr_columns_are_backfilled(self):
        assert {"approval_rule_id", "approval_sequence", "required_approval_percentage"} <= set(
            migration.EXPECTED_COLUMNS["expenses"]
        )
        assert {"ocr_merchant", "ocr_amount", "ocr_date", "ocr_confidence"} <= set(
            migration.EXPECTED_COLUMNS["expense_receipts"]
        )
