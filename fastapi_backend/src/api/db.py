import logging
import os
from contextlib import contextmanager
from threading import Lock
from typing import Any, Dict, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool

logger = logging.getLogger(__name__)


class PostgresPool:
    """
    Lazily opened PostgreSQL connection pool with small query helpers.

    One instance is built by the app factory and handed to the auth store.
    """

    def __init__(self, dsn: str, minconn: Optional[int] = None, maxconn: Optional[int] = None):
        self._dsn = dsn
        # Conservative pool sizes for a small FastAPI service.
        self._minconn = minconn if minconn is not None else int(os.getenv("DB_POOL_MIN", "1"))
        self._maxconn = maxconn if maxconn is not None else int(os.getenv("DB_POOL_MAX", "10"))
        self._pool: Optional[ThreadedConnectionPool] = None
        self._lock = Lock()

    # PUBLIC_INTERFACE
    def open(self) -> None:
        """Open the pool. No-op when already open."""
        with self._lock:
            if self._pool is not None:
                return
            self._pool = ThreadedConnectionPool(
                minconn=self._minconn,
                maxconn=self._maxconn,
                dsn=self._dsn,
            )
            logger.info("Opened Postgres pool (min=%s, max=%s)", self._minconn, self._maxconn)

    # PUBLIC_INTERFACE
    def close(self) -> None:
        """Close every pooled connection."""
        with self._lock:
            if self._pool is None:
                return
            self._pool.closeall()
            self._pool = None
            logger.info("Closed Postgres pool")

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    @contextmanager
    def _get_conn(self):
        if self._pool is None:
            self.open()
        assert self._pool is not None
        conn = self._pool.getconn()
        try:
            yield conn
        except Exception:
            if not conn.closed:
                conn.rollback()
            raise
        finally:
            # Broken connections are discarded instead of going back to the pool.
            self._pool.putconn(conn, close=bool(conn.closed))

    @staticmethod
    def _dict_cursor(conn):
        return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    # PUBLIC_INTERFACE
    def fetch_one(self, query: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        """Fetch a single row as a dict, or None."""
        with self._get_conn() as conn:
            with self._dict_cursor(conn) as cur:
                cur.execute(query, params or [])
                row = cur.fetchone()
                return dict(row) if row else None

    # PUBLIC_INTERFACE
    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """Execute a statement (INSERT/UPDATE/DELETE/DDL). Returns affected rowcount."""
        with self._get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params or [])
                affected = cur.rowcount
                conn.commit()
                return affected

    # PUBLIC_INTERFACE
    def execute_returning_one(self, query: str, params: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        """Execute a statement with RETURNING and return the first row as dict."""
        with self._get_conn() as conn:
            with self._dict_cursor(conn) as cur:
                cur.execute(query, params or [])
                row = cur.fetchone()
                if not row:
                    conn.rollback()
                    raise RuntimeError("Expected one row returned, got none.")
                conn.commit()
                return dict(row)
