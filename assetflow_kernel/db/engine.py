"""
Module: assetflow_kernel.db.engine
Responsibility: Build SQLAlchemy engines for the asset store and create its
    schema.  Callers own the engine and the session factory bound to it.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, domain/, or outer layers
    (except create_tables, which imports the kernel ORM models).

Invariants enforced:
    - PostgreSQL: READ COMMITTED with explicit row-level locking
      (SELECT ... FOR UPDATE) wherever a guard is re-checked before a write.
    - SQLite: the driver's implicit transaction handling is disabled and
      every transaction opens with BEGIN IMMEDIATE, so writers are
      serialized and the guard read and the write happen under the same
      reserved lock.  SAVEPOINT works under this mode.

Failure modes:
    - ValueError for a URL naming any other backend.
    - OperationalError ("database is locked") if a SQLite writer waits longer
      than ``busy_timeout`` seconds.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url

from assetflow_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def _install_sqlite_locking(engine: Engine) -> None:
    """Make every SQLite transaction a BEGIN IMMEDIATE transaction."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy's "begin" event below.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    busy_timeout: float = 30.0,
) -> Engine:
    """
    Create an engine for a PostgreSQL or SQLite asset store.

    Preconditions: database_url is a valid SQLAlchemy URL for a
        ``postgresql`` or ``sqlite`` backend.
    Postconditions: Returns a configured Engine.  SQLite engines have the
        BEGIN IMMEDIATE locking discipline installed.

    Raises:
        ValueError: If the URL names an unsupported backend.
    """
    url = make_url(database_url)
    backend = url.get_backend_name()

    if backend == "postgresql":
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
    elif backend == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"timeout": busy_timeout, "check_same_thread": False},
        )
        _install_sqlite_locking(engine)
    else:
        raise ValueError(f"Unsupported database backend: {backend}")

    logger.info(
        "engine_built",
        extra={"dialect": backend, "echo": echo},
    )
    return engine


def create_tables(engine: Engine) -> None:
    """
    Create every table registered on Base.metadata.

    Kernel models are imported here; asset tables are only included if
    their ORM module was imported first.  Use
    ``assetflow_modules._orm_registry.create_all_tables()`` for the full
    schema.
    """
    import assetflow_kernel.models  # noqa: F401
    import assetflow_kernel.services.sequence_service  # noqa: F401
    from assetflow_kernel.db.base import Base

    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})
