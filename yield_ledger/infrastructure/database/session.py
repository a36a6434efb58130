"""Database session management with connection pooling"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from yield_ledger.config import settings
from yield_ledger.infrastructure.database import immutability  # noqa: F401  registers ledger guards


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """
    Let pysqlite honour SAVEPOINT so unique-constraint gates can roll back
    a single insert without losing the surrounding transaction.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        return enable_sqlite_savepoints(
            create_engine(database_url, connect_args={"check_same_thread": False})
        )
    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
