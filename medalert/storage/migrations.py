"""
Schema versioning for the relational backend.

The schema version lives in SQLite's `PRAGMA user_version`. Migrations are an
ordered list applied one at a time through alembic's `Operations`, each one
followed by a version bump. Dropping everything is only used as a recovery
path for databases the migrations cannot reason about.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence
import logging

from alembic.migration import MigrationContext
from alembic.operations import Operations
import sqlalchemy as sa
from sqlalchemy.engine import Connection

# Set up logging
logger = logging.getLogger(__name__)

MEDICATIONS_TABLE = "medications"
STATUS_TABLE = "medication_status"

INDEX_START_DATE = "idx_medications_startDate"
INDEX_TIME = "idx_medications_time"
INDEX_MEDICATION_DATE = "idx_medication_status_medication_date"

# Columns that must exist for a table to be usable
REQUIRED_COLUMNS: Dict[str, Sequence[str]] = {
    MEDICATIONS_TABLE: (
        "id", "name", "dosage", "frequency", "time", "instructions",
        "startDate", "endDate", "createdAt", "updatedAt",
    ),
    STATUS_TABLE: (
        "id", "medicationId", "date", "taken", "takenAt", "createdAt", "updatedAt",
    ),
}


@dataclass(frozen=True)
class Migration:
    """One schema step; `upgrade` receives alembic Operations bound to the connection."""
    version: int
    description: str
    upgrade: Callable[[Operations], None]


def _create_initial_schema(op: Operations) -> None:
    op.create_table(
        MEDICATIONS_TABLE,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("dosage", sa.String(), nullable=False),
        sa.Column("frequency", sa.String(), nullable=False),
        sa.Column("time", sa.String(), nullable=False),
        sa.Column("instructions", sa.String(), nullable=True),
        sa.Column("startDate", sa.Date(), nullable=False),
        sa.Column("endDate", sa.Date(), nullable=True),
        sa.Column("createdAt", sa.DateTime(), nullable=False),
        sa.Column("updatedAt", sa.DateTime(), nullable=False),
    )
    op.create_table(
        STATUS_TABLE,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("medicationId", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("taken", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("takenAt", sa.DateTime(), nullable=True),
        sa.Column("createdAt", sa.DateTime(), nullable=False),
        sa.Column("updatedAt", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["medicationId"], [f"{MEDICATIONS_TABLE}.id"], ondelete="CASCADE"),
    )
    op.create_index(INDEX_START_DATE, MEDICATIONS_TABLE, ["startDate"], unique=False)
    op.create_index(INDEX_TIME, MEDICATIONS_TABLE, ["time"], unique=False)
    op.create_index(INDEX_MEDICATION_DATE, STATUS_TABLE, ["medicationId", "date"], unique=False)


def _unique_status_per_day(op: Operations) -> None:
    # Keep the newest row of every (medicationId, date) pair before enforcing uniqueness
    op.execute(
        f"DELETE FROM {STATUS_TABLE} WHERE id NOT IN "
        f"(SELECT MAX(id) FROM {STATUS_TABLE} GROUP BY medicationId, date)"
    )
    # Unversioned databases may lack the non-unique index
    op.execute(f'DROP INDEX IF EXISTS "{INDEX_MEDICATION_DATE}"')
    op.create_index(INDEX_MEDICATION_DATE, STATUS_TABLE, ["medicationId", "date"], unique=True)


MIGRATIONS: List[Migration] = [
    Migration(1, "Create medications and medication_status tables", _create_initial_schema),
    Migration(2, "Enforce one status row per medication and day", _unique_status_per_day),
]

SCHEMA_VERSION = MIGRATIONS[-1].version


def get_schema_version(connection: Connection) -> int:
    return int(connection.exec_driver_sql("PRAGMA user_version").scalar() or 0)


def set_schema_version(connection: Connection, version: int) -> None:
    # PRAGMA does not take bound parameters
    connection.exec_driver_sql(f"PRAGMA user_version = {int(version)}")


def existing_tables(connection: Connection) -> List[str]:
    return sa.inspect(connection).get_table_names()


def has_valid_structure(connection: Connection) -> bool:
    """
    Check that both tables exist with every required column.
    """
    inspector = sa.inspect(connection)
    tables = set(inspector.get_table_names())
    for table, required in REQUIRED_COLUMNS.items():
        if table not in tables:
            logger.warning(f"Schema check: table {table} is missing")
            return False
        columns = {column["name"] for column in inspector.get_columns(table)}
        missing = [name for name in required if name not in columns]
        if missing:
            logger.warning(f"Schema check: table {table} is missing columns {missing}")
            return False
    return True


def reset_schema(connection: Connection) -> None:
    """
    Drop every index and table and set the version back to 0.

    Status rows go first because they reference medications.
    """
    logger.warning("Resetting medication schema; all stored data is dropped")
    for index in (INDEX_MEDICATION_DATE, INDEX_TIME, INDEX_START_DATE):
        connection.exec_driver_sql(f'DROP INDEX IF EXISTS "{index}"')
    for table in (STATUS_TABLE, MEDICATIONS_TABLE):
        connection.exec_driver_sql(f'DROP TABLE IF EXISTS "{table}"')
    set_schema_version(connection, 0)


def apply_migrations(connection: Connection, current_version: int) -> int:
    """
    Apply every migration newer than `current_version`, in order.

    Args:
        connection: Open connection inside a transaction
        current_version: Version recorded in the database

    Returns:
        int: The resulting schema version
    """
    op = Operations(MigrationContext.configure(connection))
    version = current_version
    for migration in MIGRATIONS:
        if migration.version <= version:
            continue
        logger.info(f"Applying schema migration {migration.version}: {migration.description}")
        migration.upgrade(op)
        set_schema_version(connection, migration.version)
        version = migration.version
    return version
