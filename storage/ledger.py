"""
Quote ledger handle - owns one SQLite connection for the life of a process.
Opened at start, closed at shutdown, passed explicitly to whoever reads it.
"""

import sqlite3
import threading
from datetime import date
from typing import Dict, Any, List, Optional, Tuple, Union

import pandas as pd

from storage.loaders import (
    get_connection,
    init_database,
    upsert_quotes,
    insert_quote,
    query_quotes,
    count_quotes,
    latest_quote_dates,
    load_quote_frame
)


class QuoteLedger:
    """
    Store of (security, exchange, date, price) facts.

    The connection is shared by every caller of the handle, so each
    operation holds the handle's lock for its whole transaction. Batches
    from different threads apply one after another, never interleaved.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._lock = threading.Lock()

    @classmethod
    def open(cls, db_path: Optional[str] = None, initialize: bool = True) -> 'QuoteLedger':
        """Open a ledger on db_path (QUOTES_DB_PATH when omitted)."""
        conn = get_connection(db_path)
        if initialize:
            init_database(conn)
        return cls(conn)

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Ledger is closed")
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> 'QuoteLedger':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def upsert_batch(
        self,
        security_id: int,
        exchange_id: int,
        items: List[Dict[str, Any]]
    ) -> Tuple[int, int]:
        with self._lock:
            return upsert_quotes(self.connection, security_id, exchange_id, items)

    def insert(self, security_id: int, exchange_id: int, quote_date: date, price: float) -> None:
        with self._lock:
            insert_quote(self.connection, security_id, exchange_id, quote_date, price)

    def query(
        self,
        isin: str,
        exchange_id: int,
        start: Union[date, str, None] = None,
        end: Union[date, str, None] = None
    ) -> List[Dict[str, Any]]:
        with self._lock:
            return query_quotes(self.connection, isin, exchange_id, start, end)

    def counts(self) -> List[Dict[str, Any]]:
        with self._lock:
            return count_quotes(self.connection)

    def latest_dates(self, isin: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return latest_quote_dates(self.connection, isin)

    def frame(self) -> pd.DataFrame:
        """Snapshot of every quote with identity columns, for analytics."""
        with self._lock:
            return load_quote_frame(self.connection)
