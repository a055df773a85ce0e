"""
Database Session
Engine and session factory for the local replica database.
"""

import logging
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def create_replica_engine(database_url: str) -> Engine:
    """
    Create an engine for the replica database.

    File-backed SQLite runs in WAL mode so readers keep seeing the last
    committed replica while a sync transaction is open. Every session
    transaction starts with an explicit BEGIN, so several reads in one session
    see the same replica generation. In-memory SQLite shares one connection
    across threads.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Configured engine
    """
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    in_memory = url.database in (None, "", ":memory:")

    if in_memory:
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        # pysqlite only begins transactions before DML; BEGIN is emitted below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_transaction(conn):
        conn.exec_driver_sql("BEGIN")

    logger.debug(f"Replica engine created: {database_url}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the replica engine."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
