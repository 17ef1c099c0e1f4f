from sqlalchemy import text, inspect
from app.database.database import engine, Base
from app.database.models.users import User, Company, ExpenseCategory
from app.database.models.expense import Expense, ExpenseReceipt, ExpenseApproval
from app.database.models.approval import ApprovalRule, ApprovalStep
from app.database.models.notification import Notification
import logging

logger = logging.getLogger(__name__)

# Global cache for column existence checks
_column_cache = {}

# Columns added after the first schema release; older databases get them on startup
EXPECTED_COLUMNS = {
    "users": {
        "department": "VARCHAR(100)",
        "updated_at": "TIMESTAMP",
    },
    "companies": {
        "max_expense_amount": "NUMERIC(12, 2) DEFAULT 10000 NOT NULL",
        "require_receipts": "BOOLEAN DEFAULT TRUE NOT NULL",
        "receipt_min_amount": "NUMERIC(12, 2) DEFAULT 25 NOT NULL",
        "updated_at": "TIMESTAMP",
    },
    "expenses": {
        "approval_rule_id": "INTEGER",
        "approval_sequence": "VARCHAR(20)",
        "required_approval_percentage": "INTEGER",
        "submission_cycle": "INTEGER DEFAULT 0 NOT NULL",
        "version_id": "INTEGER DEFAULT 1 NOT NULL",
        "submitted_at": "TIMESTAMP",
    },
    "expense_receipts": {
        "ocr_merchant": "VARCHAR(255)",
        "ocr_amount": "NUMERIC(12, 2)",
        "ocr_date": "DATE",
        "ocr_confidence": "FLOAT",
    },
}


def has_column(table_name: str, column_name: str) -> bool:
    """Check if a table has a specific column (with caching)"""
    cache_key = f"{table_name}.{column_name}"

    if cache_key not in _column_cache:
        inspector = inspect(engine)
        columns = [col['name'] for col in inspector.get_columns(table_name)]
        _column_cache[cache_key] = column_name in columns

    return _column_cache[cache_key]


def add_column_if_not_exists(table_name: str, column_name: str, column_type: str):
    """Add a column to a table if it doesn't exist"""
    if has_column(table_name, column_name):
        return
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_type}"))
    logger.info(f"Added column {column_name} to {table_name} table")
    _column_cache[f"{table_name}.{column_name}"] = True


def check_and_add_missing_columns():
    """Check for missing columns and add them if necessary"""
    logger.info("Checking for missing database columns...")
    for table_name, columns in EXPECTED_COLUMNS.items():
        for col_name, col_type in columns.items():
            add_column_if_not_exists(table_name, col_name, col_type)
    logger.info("Column verification completed")


def create_tables_if_not_exist():
    """Create tables if they don't exist"""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")


def run_migration():
    """Run complete database migration"""
    logger.info("Starting database migration...")

    # Create tables first
    create_tables_if_not_exist()

    # Then add missing columns
    check_and_add_missing_columns()

    logger.info("Database migration completed!")
