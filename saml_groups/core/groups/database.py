"""Low-level relational store for group membership.

Wraps a SQLAlchemy engine, owns the two table definitions, and translates
driver errors into StorageError.
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import Column, Index, MetaData, String, Table, create_engine, insert
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import StorageError

logger = logging.getLogger(__name__)

DEFAULT_GROUPS_TABLE = "user_saml_groups"
DEFAULT_MEMBERSHIP_TABLE = "user_saml_group_user"
GID_MAX_LENGTH = 64
UID_MAX_LENGTH = 64


class Database:
    """SQLAlchemy-backed store with the groups and membership relations.

    Usage:
        db = Database.from_url("sqlite:///groups.db")
        db.create_schema()
        with db.transaction("create_group") as conn:
            conn.execute(db.groups.insert().values(gid="staff"))
    """

    def __init__(
        self,
        engine: Engine,
        groups_table: str = DEFAULT_GROUPS_TABLE,
        membership_table: str = DEFAULT_MEMBERSHIP_TABLE,
    ):
        """Initialize the store.

        Args:
            engine: SQLAlchemy engine
            groups_table: Name of the group existence relation
            membership_table: Name of the uid/gid relation
        """
        self.engine = engine
        self.metadata = MetaData()
        self.groups = Table(
            groups_table,
            self.metadata,
            Column("gid", String(GID_MAX_LENGTH), primary_key=True),
        )
        # No unique constraint: duplicates are prevented by check-then-insert
        self.memberships = Table(
            membership_table,
            self.metadata,
            Column("gid", String(GID_MAX_LENGTH), nullable=False),
            Column("uid", String(UID_MAX_LENGTH), nullable=False),
            Index(f"{membership_table}_gid_uid", "gid", "uid"),
            Index(f"{membership_table}_uid", "uid"),
        )

    @classmethod
    def from_url(
        cls,
        url: str,
        groups_table: str = DEFAULT_GROUPS_TABLE,
        membership_table: str = DEFAULT_MEMBERSHIP_TABLE,
        **engine_kwargs,
    ) -> "Database":
        """Create a store from a database URL.

        SQLite parent directories are created so a fresh checkout works.
        """
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, **engine_kwargs)
        return cls(engine, groups_table, membership_table)

    def create_schema(self) -> None:
        """Create both relations if they do not exist yet."""
        try:
            self.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError("create_schema", str(exc)) from exc
        logger.info(f"Schema ready: {self.groups.name}, {self.memberships.name}")

    @contextmanager
    def connect(self, operation: str) -> Iterator[Connection]:
        """Yield a read connection; driver errors become StorageError."""
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise StorageError(operation, str(exc)) from exc

    @contextmanager
    def transaction(self, operation: str) -> Iterator[Connection]:
        """Yield a connection inside BEGIN/COMMIT; rolls back on any error."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise StorageError(operation, str(exc)) from exc

    def insert_ignore(self, table: Table):
        """INSERT that skips rows colliding with the primary key.

        The rowcount of the executed statement is 0 when the row already existed.
        Dialects without an ignore clause get a plain INSERT.
        """
        dialect = self.engine.dialect.name
        if dialect == "sqlite":
            return sqlite.insert(table).on_conflict_do_nothing()
        if dialect == "postgresql":
            return postgresql.insert(table).on_conflict_do_nothing()
        if dialect in ("mysql", "mariadb"):
            return mysql.insert(table).prefix_with("IGNORE")
        return insert(table)

    def dispose(self) -> None:
        self.engine.dispose()


def escape_like(value: str, escape: str = "\\") -> str:
    """Escape LIKE wildcards so the search text matches literally."""
    return (
        value.replace(escape, escape + escape)
        .replace("%", escape + "%")
        .replace("_", escape + "_")
    )


def paginate(stmt, limit: Optional[int] = None, offset: Optional[int] = None):
    """Apply limit/offset; None means no pagination on that axis."""
    if limit is not None:
        stmt = stmt.limit(limit)
    if offset is not None:
        stmt = stmt.offset(offset)
    return stmt
