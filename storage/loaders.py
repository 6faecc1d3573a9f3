"""
Quote ledger loaders - idempotent upsert and read functions for SQLite.
Thin IO layer with focus on data integrity and idempotence.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Dict, Any, Iterator, List, Tuple, Optional, Union

import pandas as pd
from dateutil import parser as date_parser
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = './data/quotes.db'


class LedgerError(Exception):
    """Base class for quote ledger failures."""
    pass


class NotFoundError(LedgerError):
    """Raised when a referenced security or exchange does not exist."""
    pass


class ConflictError(LedgerError):
    """Raised when a row would violate a uniqueness constraint."""
    pass


def init_database(conn: sqlite3.Connection) -> None:
    """
    Initialize database with required tables.
    Idempotent - safe to call multiple times.

    Args:
        conn: SQLite connection
    """
    conn.execute("PRAGMA foreign_keys = ON")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS securities (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            isin TEXT NOT NULL UNIQUE CHECK(length(isin) = 12),
            name TEXT NOT NULL,
            instrument_type TEXT NOT NULL DEFAULT ''
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS exchanges (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS quotes (
            security_id INTEGER NOT NULL REFERENCES securities(id),
            exchange_id INTEGER NOT NULL REFERENCES exchanges(id),
            date TEXT NOT NULL,
            price REAL NOT NULL CHECK(price >= 0),
            PRIMARY KEY (security_id, exchange_id, date)
        )
    """)

    conn.execute("CREATE INDEX IF NOT EXISTS idx_quotes_date ON quotes(date)")

    conn.commit()


def get_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Get SQLite connection with proper configuration.

    Args:
        db_path: Path to SQLite database file (defaults to QUOTES_DB_PATH)

    Returns:
        Configured SQLite connection
    """
    if db_path is None:
        db_path = os.getenv('QUOTES_DB_PATH', DEFAULT_DB_PATH)

    timeout = float(os.getenv('QUOTES_DB_TIMEOUT_S', '30'))

    if db_path != ':memory:':
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")  # Better concurrency
    return conn


@contextmanager
def savepoint(conn: sqlite3.Connection, name: str) -> Iterator[None]:
    """
    Run a block inside a SQLite savepoint.

    A failure rolls back only the work done inside the block. Outside a
    transaction, releasing the savepoint commits; inside one, the caller's
    transaction stays open and uncommitted.
    """
    conn.execute(f"SAVEPOINT {name}")
    try:
        yield
    except Exception:
        conn.execute(f"ROLLBACK TO {name}")
        conn.execute(f"RELEASE {name}")
        raise
    conn.execute(f"RELEASE {name}")


def _require_pair(conn: sqlite3.Connection, security_id: int, exchange_id: int) -> None:
    """Raise NotFoundError unless both referenced rows exist."""
    cursor = conn.execute("SELECT 1 FROM securities WHERE id = ?", (security_id,))
    if cursor.fetchone() is None:
        raise NotFoundError(f"Security id {security_id} not found")

    cursor = conn.execute("SELECT 1 FROM exchanges WHERE id = ?", (exchange_id,))
    if cursor.fetchone() is None:
        raise NotFoundError(f"Exchange id {exchange_id} not found")


def upsert_quotes(
    conn: sqlite3.Connection,
    security_id: int,
    exchange_id: int,
    items: List[Dict[str, Any]]
) -> Tuple[int, int]:
    """
    Upsert a batch of quotes for one security/exchange pair.
    Idempotent - can be called multiple times with same data.

    The batch is applied in a single write transaction: either every item
    lands or none does. Items sharing a date resolve to the last one.

    Args:
        conn: SQLite connection
        security_id: Security the quotes belong to
        exchange_id: Exchange the quotes were recorded on
        items: List of {'date': date, 'price': float} dictionaries

    Returns:
        Tuple of (inserted_count, updated_count)

    Raises:
        NotFoundError: If the security or exchange does not exist
        LedgerError: If the connection already has an open transaction
    """
    if conn.in_transaction:
        raise LedgerError("upsert_quotes needs a connection with no open transaction")

    # Take the write lock before the existence checks
    conn.execute("BEGIN IMMEDIATE")

    inserted = 0
    updated = 0

    try:
        _require_pair(conn, security_id, exchange_id)

        for item in items:
            quote_date = item['date'].isoformat()

            cursor = conn.execute(
                "SELECT COUNT(*) FROM quotes WHERE security_id = ? AND exchange_id = ? AND date = ?",
                (security_id, exchange_id, quote_date)
            )
            exists = cursor.fetchone()[0] > 0

            if exists:
                conn.execute("""
                    UPDATE quotes SET price = ?
                    WHERE security_id = ? AND exchange_id = ? AND date = ?
                """, (item['price'], security_id, exchange_id, quote_date))
                updated += 1
            else:
                conn.execute("""
                    INSERT INTO quotes (security_id, exchange_id, date, price)
                    VALUES (?, ?, ?, ?)
                """, (security_id, exchange_id, quote_date, item['price']))
                inserted += 1

        conn.commit()
    except Exception:
        conn.rollback()
        raise

    logger.info(
        "Upserted %d quotes for security_id=%s exchange_id=%s (%d new, %d updated)",
        inserted + updated, security_id, exchange_id, inserted, updated
    )
    return (inserted, updated)


def insert_quote(
    conn: sqlite3.Connection,
    security_id: int,
    exchange_id: int,
    quote_date: date,
    price: float
) -> None:
    """
    Insert a single quote without overwrite semantics.

    A conflicting insert rolls back only its own savepoint; uncommitted work
    the caller has on conn is left in place.

    Raises:
        NotFoundError: If the security or exchange does not exist
        ConflictError: If a quote for the same pair and date is already stored
    """
    _require_pair(conn, security_id, exchange_id)

    try:
        with savepoint(conn, "insert_quote"):
            conn.execute("""
                INSERT INTO quotes (security_id, exchange_id, date, price)
                VALUES (?, ?, ?, ?)
            """, (security_id, exchange_id, quote_date.isoformat(), price))
    except sqlite3.IntegrityError as e:
        if 'UNIQUE' not in str(e):
            raise
        raise ConflictError(
            f"Quote for security_id={security_id} exchange_id={exchange_id} "
            f"on {quote_date} already exists"
        ) from e


def _coerce_date(value: Union[date, str, None]) -> Optional[date]:
    """Best-effort date parsing; returns None for unparsable input."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(str(value)).date()
    except (ValueError, OverflowError):
        return None


def query_quotes(
    conn: sqlite3.Connection,
    isin: str,
    exchange_id: int,
    start: Union[date, str, None] = None,
    end: Union[date, str, None] = None
) -> List[Dict[str, Any]]:
    """
    Query quotes for one security/exchange pair, oldest first.

    Args:
        conn: SQLite connection
        isin: Security ISIN
        exchange_id: Exchange id
        start: Optional inclusive range start; an unparsable value disables
            the range filter entirely
        end: Optional inclusive range end (defaults to today when start is given)

    Returns:
        List of {'isin', 'exchange_id', 'date', 'price'} dictionaries
    """
    query = """
        SELECT s.isin, q.exchange_id, q.date, q.price
        FROM quotes q
        JOIN securities s ON s.id = q.security_id
        WHERE s.isin = ? AND q.exchange_id = ?
    """
    params: List[Any] = [isin, exchange_id]

    if start is not None:
        start_date = _coerce_date(start)
        if start_date is None:
            logger.warning("Ignoring date range: unparsable start %r", start)
        else:
            end_date = _coerce_date(end) or date.today()
            query += " AND q.date >= ? AND q.date <= ?"
            params.extend([start_date.isoformat(), end_date.isoformat()])

    query += " ORDER BY q.date ASC"

    cursor = conn.execute(query, params)

    return [
        {
            'isin': row[0],
            'exchange_id': row[1],
            'date': date.fromisoformat(row[2]),
            'price': row[3]
        }
        for row in cursor.fetchall()
    ]


def count_quotes(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """
    Count stored quotes per security/exchange pair.

    Returns:
        List of {'isin', 'exchange_name', 'count'} dictionaries
    """
    cursor = conn.execute("""
        SELECT s.isin, e.name, COUNT(*)
        FROM quotes q
        JOIN securities s ON s.id = q.security_id
        JOIN exchanges e ON e.id = q.exchange_id
        GROUP BY q.security_id, q.exchange_id
        ORDER BY s.isin, e.name
    """)

    return [
        {'isin': row[0], 'exchange_name': row[1], 'count': row[2]}
        for row in cursor.fetchall()
    ]


def latest_quote_dates(
    conn: sqlite3.Connection,
    isin: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Latest stored quote date per security/exchange pair.

    Args:
        conn: SQLite connection
        isin: Restrict to a single security (optional)

    Returns:
        List of {'isin', 'exchange_name', 'latest_date'} dictionaries
    """
    query = """
        SELECT s.isin, e.name, MAX(q.date)
        FROM quotes q
        JOIN securities s ON s.id = q.security_id
        JOIN exchanges e ON e.id = q.exchange_id
    """
    params: List[Any] = []

    if isin is not None:
        query += " WHERE s.isin = ?"
        params.append(isin)

    query += " GROUP BY q.security_id, q.exchange_id ORDER BY s.isin, e.name"

    cursor = conn.execute(query, params)

    return [
        {'isin': row[0], 'exchange_name': row[1], 'latest_date': date.fromisoformat(row[2])}
        for row in cursor.fetchall()
    ]


def load_quote_frame(conn: sqlite3.Connection) -> pd.DataFrame:
    """
    Load every quote joined with its security and exchange identity.

    Returns:
        DataFrame ordered by pair then date, with a python `date` column
    """
    df = pd.read_sql_query("""
        SELECT q.security_id, q.exchange_id,
               s.isin, s.name AS security_name, s.instrument_type,
               e.name AS exchange_name,
               q.date, q.price
        FROM quotes q
        JOIN securities s ON s.id = q.security_id
        JOIN exchanges e ON e.id = q.exchange_id
        ORDER BY q.security_id, q.exchange_id, q.date ASC
    """, conn)

    if not df.empty:
        df['date'] = pd.to_datetime(df['date']).dt.date
        df['price'] = df['price'].astype(float)

    return df
