"""Database connection and session management."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.logger import get_logger
from .models import Base

logger = get_logger("storage.database")


class DatabaseManager:
    """Manages database connections and sessions for the engine.

    Every instance owns its own engine, so tests can use
    ``DatabaseManager("sqlite:///:memory:")`` in isolation.
    """

    def __init__(self, database_url: str = "sqlite:///./area_engine.db", echo: bool = False) -> None:
        """Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log every SQL statement
        """
        logger.info("Initializing database with URL: %s", database_url)
        self.database_url = database_url

        if database_url.startswith("sqlite"):
            kwargs: dict = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in database_url:
                # One shared connection, otherwise each session sees an empty database
                kwargs["poolclass"] = StaticPool
            self._engine = create_engine(database_url, echo=echo, **kwargs)
            event.listen(self._engine, "connect", _configure_sqlite_connection)
            event.listen(self._engine, "begin", _begin_sqlite_transaction)
        else:
            self._engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

        # Keep instances usable after commit
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self._engine,
        )

    @property
    def engine(self):
        return self._engine

    def create_tables(self) -> None:
        """Create all database tables if they don't exist."""
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=self._engine)
        logger.info("Database tables created successfully")

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        logger.warning("Dropping all database tables...")
        Base.metadata.drop_all(bind=self._engine)
        logger.info("Database tables dropped")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session with automatic cleanup.

        Yields:
            SQLAlchemy Session object
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self._engine.dispose()


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    # pysqlite's own transaction handling breaks SAVEPOINT; SQLAlchemy emits BEGIN instead
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(connection) -> None:
    connection.exec_driver_sql("BEGIN")


def init_database(database_url: str, echo: bool = False) -> DatabaseManager:
    """Initialize the database and create tables.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        DatabaseManager instance
    """
    db = DatabaseManager(database_url, echo=echo)
    db.create_tables()
    return db
