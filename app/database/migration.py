from sqlalchemy import text, inspect
from app.database.database import engine, Base
# Imported so every table is registered on Base.metadata
from app.database.models.users import User, Company  # noqa: F401
from app.database.models.approval import ApprovalRule, ApprovalRuleCondition, ApprovalRuleApprover  # noqa: F401
from app.database.models.expense import Expense, ApprovalChainRule, ExpenseApproval  # noqa: F401
from app.database.models.notification import Notification  # noqa: F401
import logging

logger = logging.getLogger(__name__)

# create_all never alters an existing table; these columns are added by hand when missing
LATE_COLUMNS = {
    "users": {
        "department": "VARCHAR(100)",
        "is_active": "BOOLEAN NOT NULL DEFAULT TRUE",
        "updated_at": "TIMESTAMP",
    },
    "approval_rules": {
        "priority": "INTEGER NOT NULL DEFAULT 100",
        "is_active": "BOOLEAN NOT NULL DEFAULT TRUE",
        "updated_at": "TIMESTAMP",
    },
    "expenses": {
        "chain_error": "TEXT",
        "submitted_at": "TIMESTAMP",
        "decided_at": "TIMESTAMP",
    },
}

def has_column(table_name: str, column_name: str) -> bool:
    """Check if a table has a specific column"""
    inspector = inspect(engine)
    if not inspector.has_table(table_name):
        return False
    columns = [col['name'] for col in inspector.get_columns(table_name)]
    return column_name in columns

def add_column_if_not_exists(table_name: str, column_name: str, column_type: str) -> bool:
    """Add a column to a table if it doesn't exist"""
    if has_column(table_name, column_name):
        return False
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_type}"))
    logger.info(f"Added column {column_name} to {table_name} table")
    return True

def check_and_add_missing_columns():
    """Check for missing columns and add them if necessary"""
    logger.info("Checking for missing database columns...")
    for table_name, columns in LATE_COLUMNS.items():
        for column_name, column_type in columns.items():
            try:
                add_column_if_not_exists(table_name, column_name, column_type)
            except Exception as e:
                logger.error(f"Failed to add column {column_name} to {table_name}: {e}")
    logger.info("Column verification completed")

def create_tables_if_not_exist():
    """Create tables if they don't exist"""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

def run_migration():
    """Run complete database migration"""
    logger.info("Starting database migration...")
    create_tables_if_not_exist()
    check_and_add_missing_columns()
    logger.info("Database migration completed!")
