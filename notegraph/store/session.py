"""Graph database engine and session management."""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Column, Connection, Engine, create_engine, event, text
from sqlalchemy import exc as sa_exc
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session, sessionmaker

from notegraph.exceptions import DatabaseError, DatabaseNotFoundError
from notegraph.store.models import GraphBase

log = logging.getLogger(__name__)


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def get_graph_engine(db_path: Path) -> Engine:
    """Create the SQLAlchemy engine for a graph database file.

    Every new connection gets a deterministic ``casefold`` SQL function,
    so case-insensitive matching in SQL agrees with ``str.casefold``.
    Connections may be used from search worker threads.
    """
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_connection, _connection_record) -> None:
        dbapi_connection.create_function("casefold", 1, _casefold, deterministic=True)

    return engine


def init_graph_db(engine: Engine) -> None:
    """Create missing tables, add missing columns and indexes, enable WAL."""
    GraphBase.metadata.create_all(engine)
    with engine.begin() as conn:
        _ensure_schema(conn)
    with engine.connect() as conn:
        conn.execute(text("PRAGMA journal_mode=WAL"))
        conn.commit()


def open_graph_engine(db_path: Path, *, create: bool = False) -> Engine:
    """Open the graph database, creating it only when ``create`` is set.

    A file that is not a readable SQLite database is replaced when
    ``create`` is set, since the caller is about to load it from scratch.

    Raises:
        DatabaseNotFoundError: If the file is missing and ``create`` is False.
        DatabaseError: If the file exists but is not a usable database.
    """
    if not db_path.exists():
        if not create:
            raise DatabaseNotFoundError(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = get_graph_engine(db_path)
    try:
        init_graph_db(engine)
    except sa_exc.DatabaseError as e:
        engine.dispose()
        if not create:
            raise DatabaseError(f"Graph database {db_path} is unreadable: {e.orig}") from e
        log.warning("Replacing unreadable graph database %s: %s", db_path, e.orig)
        db_path.unlink()
        engine = get_graph_engine(db_path)
        init_graph_db(engine)
    return engine


@contextmanager
def get_graph_session(db_path: Path, *, create: bool = False) -> Generator[Session, None, None]:
    """Session over the graph database, committed on success.

    The engine is disposed when the block exits.
    """
    engine = open_graph_engine(db_path, create=create)
    session = sessionmaker(bind=engine)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        engine.dispose()


def _add_column_ddl(table_name: str, column: Column, conn: Connection) -> str | None:
    col_type = column.type.compile(conn.dialect)
    default = ""
    if column.server_default is not None:
        default = f" DEFAULT {column.server_default.arg}"
    elif not column.nullable:
        # SQLite cannot add a NOT NULL column without a default
        return None
    not_null = "" if column.nullable else " NOT NULL"
    return f"ALTER TABLE {table_name} ADD COLUMN {column.name} {col_type}{not_null}{default}"


def _ensure_schema(conn: Connection) -> None:
    """Bring tables written by an older version up to the current models.

    Only additive changes are applied.  Anything else needs the database
    to be rebuilt with ``notegraph load``.
    """
    inspector = sa_inspect(conn)
    for table in GraphBase.metadata.sorted_tables:
        known_cols = {col["name"] for col in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in known_cols:
                continue
            ddl = _add_column_ddl(table.name, column, conn)
            if ddl is None:
                log.warning(
                    "Cannot add column %s.%s; run 'notegraph load' to rebuild",
                    table.name,
                    column.name,
                )
                continue
            conn.execute(text(ddl))
            log.info("Schema evolution: added column %s.%s", table.name, column.name)

        known_indexes = {idx["name"] for idx in inspector.get_indexes(table.name)}
        for index in table.indexes:
            if index.name not in known_indexes:
                index.create(conn)
                log.info("Schema evolution: created index %s on %s", index.name, table.name)
