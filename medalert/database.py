"""
Database engine and session management.
Provides SQLAlchemy engine construction, session factories, and the base class for models.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Special SQLite path for a private in-memory database
MEMORY_PATH = ":memory:"

# Create base class for declarative models
Base = declarative_base()


def _configure_sqlite(enable_wal: bool):
    def on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if enable_wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()
    return on_connect


def create_db_engine(database_path: str) -> Engine:
    """
    Create a SQLAlchemy engine for an SQLite database file.

    Foreign keys are switched on for every connection. File databases use
    write-ahead logging; an in-memory database is pinned to a single
    connection so every session sees the same data.

    Args:
        database_path: Path of the database file, or ":memory:"

    Returns:
        Engine: Configured engine
    """
    in_memory = database_path == MEMORY_PATH
    if in_memory:
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            f"sqlite:///{database_path}",
            connect_args={"check_same_thread": False},
        )

    event.listen(engine, "connect", _configure_sqlite(enable_wal=not in_memory))
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """
    Create the session factory used by the relational adapter.

    Objects stay readable after commit so they can be converted to schemas
    once the transaction is done.
    """
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
