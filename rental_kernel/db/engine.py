"""
Module: rental_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory creation,
    and transactional scope utilities.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers
    (except create_tables/drop_tables, which import the ORM registry).

Invariants enforced:
    - No module-level engine.  The engine and session factory are built once
      at process start and passed explicitly to every component that needs
      them, so tests can substitute their own.
    - PostgreSQL sessions run at READ COMMITTED with explicit row locking
      (SELECT ... FOR UPDATE) where stronger isolation is needed.
    - SQLite connections open every transaction with BEGIN IMMEDIATE so that
      concurrent writers serialize on the database lock instead of failing
      lock upgrades mid-transaction.

Failure modes:
    - OperationalError on deadlock during schema creation (retried).
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from rental_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Build a SQLAlchemy engine for the given database URL.

    PostgreSQL is the production backend.  SQLite is accepted for tests and
    local runs: in-memory databases share one connection via StaticPool,
    file databases get a busy timeout and BEGIN IMMEDIATE transactions.

    Args:
        database_url: SQLAlchemy URL (postgresql://..., sqlite:///...).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Max connections beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        sqlite_busy_timeout: Seconds SQLite waits on a locked database.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        kwargs: dict = {
            "echo": echo,
            "connect_args": {
                "check_same_thread": False,
                "timeout": sqlite_busy_timeout,
            },
        }
        if in_memory:
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        _install_sqlite_hooks(engine)
        logger.info(
            "engine_initialized",
            extra={"dialect": "sqlite", "in_memory": in_memory, "echo": echo},
        )
        return engine

    engine = create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )
    logger.info(
        "engine_initialized",
        extra={
            "dialect": url.get_backend_name(),
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return engine


def _install_sqlite_hooks(engine: Engine) -> None:
    """Enable foreign keys and take the write lock at BEGIN."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself (pysqlite defers it otherwise).
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """One session per unit of work; objects stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    Open a session, commit it if the block completes, roll it back if the
    block raises.  The session is closed either way and the exception
    propagates unchanged.

        with session_scope(factory) as session:
            ledger = InvoiceLedger(session, clock)
            ledger.void_invoice(org_id, actor_id, invoice_id)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("unit_of_work_rolled_back")
        raise
    finally:
        session.close()


def _billing_metadata():
    from rental_kernel.db.base import Base
    from rental_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    return Base.metadata


def create_tables(engine: Engine, attempts: int = 3) -> None:
    """
    Create the billing schema.  Existing tables are left alone.

    PostgreSQL may report a deadlock when another process is creating the
    same catalog entries; that case is retried a few times.
    """
    metadata = _billing_metadata()
    attempt = 1
    while True:
        try:
            metadata.create_all(engine)
        except OperationalError as exc:
            if attempt >= attempts or "deadlock" not in str(exc).lower():
                raise
            logger.warning("schema_create_deadlock", extra={"attempt": attempt})
            engine.dispose()
            time.sleep(0.5 * attempt)
            attempt += 1
        else:
            break
    logger.info("schema_created", extra={"table_count": len(metadata.tables)})


def drop_tables(engine: Engine) -> None:
    """Drop the billing schema (tests and ``scripts/create_tables.py --drop``)."""
    _billing_metadata().drop_all(engine)
