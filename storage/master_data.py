"""
Master data lookups - securities and exchanges referenced by the quote ledger.
Resolves external identities (ISIN, exchange name or id) to row ids.
"""

import sqlite3
from typing import Dict, Any, Union

from storage.loaders import NotFoundError, ConflictError, savepoint


def add_security(
    conn: sqlite3.Connection,
    isin: str,
    name: str,
    instrument_type: str = ''
) -> int:
    """
    Register a security.
    Commits unless the caller already holds an open transaction.

    Args:
        conn: SQLite connection
        isin: 12-character ISIN
        name: Display name
        instrument_type: Free-form classification (e.g. 'share', 'etf')

    Returns:
        Security id

    Raises:
        ConflictError: If the ISIN is already registered
        ValueError: If the ISIN is not 12 characters long
    """
    if not isinstance(isin, str) or len(isin) != 12:
        raise ValueError(f"ISIN must be exactly 12 characters long, got {isin!r}")

    try:
        with savepoint(conn, "add_security"):
            cursor = conn.execute(
                "INSERT INTO securities (isin, name, instrument_type) VALUES (?, ?, ?)",
                (isin, name, instrument_type)
            )
    except sqlite3.IntegrityError as e:
        raise ConflictError(f"Security {isin} already exists") from e

    return cursor.lastrowid


def add_exchange(conn: sqlite3.Connection, name: str) -> int:
    """
    Register an exchange.
    Commits unless the caller already holds an open transaction.

    Raises:
        ConflictError: If an exchange with this name exists
    """
    try:
        with savepoint(conn, "add_exchange"):
            cursor = conn.execute("INSERT INTO exchanges (name) VALUES (?)", (name,))
    except sqlite3.IntegrityError as e:
        raise ConflictError(f"Exchange {name} already exists") from e

    return cursor.lastrowid


def get_security(conn: sqlite3.Connection, isin: str) -> Dict[str, Any]:
    """
    Look up a security by ISIN.

    Returns:
        {'id', 'isin', 'name', 'instrument_type'} dictionary

    Raises:
        NotFoundError: If no security has this ISIN
    """
    cursor = conn.execute(
        "SELECT id, isin, name, instrument_type FROM securities WHERE isin = ?",
        (isin,)
    )
    row = cursor.fetchone()
    if row is None:
        raise NotFoundError(f"Security {isin} not found")

    return {'id': row[0], 'isin': row[1], 'name': row[2], 'instrument_type': row[3]}


def get_exchange(conn: sqlite3.Connection, ref: Union[int, str]) -> Dict[str, Any]:
    """
    Look up an exchange by id or by name.

    Integers and digit-only strings are treated as ids, anything else as a name.

    Raises:
        NotFoundError: If the exchange does not exist
    """
    if isinstance(ref, int) or (isinstance(ref, str) and ref.isdigit()):
        cursor = conn.execute("SELECT id, name FROM exchanges WHERE id = ?", (int(ref),))
    else:
        cursor = conn.execute("SELECT id, name FROM exchanges WHERE name = ?", (ref,))

    row = cursor.fetchone()
    if row is None:
        raise NotFoundError(f"Exchange {ref} not found")

    return {'id': row[0], 'name': row[1]}
