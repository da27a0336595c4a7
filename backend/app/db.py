"""Shared DuckDB connection for the identity, room and message stores.

The stores share one connection so that a multi-store state transition (for
example accepting a connection, which touches two user records and a room)
can commit or roll back as a unit.

Thread Safety:
    The DuckDB connection is NOT thread-safe. The application drives it from
    the single asyncio event loop; per-pair ordering is handled one level up
    by ``PairLocks``.
"""
import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence

import duckdb

from app.config import MEMORY_DB

logger = logging.getLogger(__name__)


class Database:
    """Owns the DuckDB connection and the transaction nesting depth."""

    def __init__(self, path: str = MEMORY_DB) -> None:
        self._path = path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._depth = 0
        logger.info("[Database] Using %s", self._path)

    @property
    def path(self) -> str:
        return self._path

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._path)
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> duckdb.DuckDBPyConnection:
        conn = self._get_connection()
        if params is None:
            return conn.execute(sql)
        return conn.execute(sql, list(params))

    def fetchone(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[tuple]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[tuple]:
        return self.execute(sql, params).fetchall()

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Run the block in a transaction.

        Nested blocks join the outermost transaction; only the outermost one
        commits or rolls back.
        """
        conn = self._get_connection()
        outermost = self._depth == 0
        if outermost:
            conn.begin()
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if outermost:
                conn.rollback()
            raise
        else:
            self._depth -= 1
            if outermost:
                conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
