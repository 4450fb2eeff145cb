"""Transaction scopes shared by the SQLite repositories."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager


@contextmanager
def write_transaction(conn: sqlite3.Connection) -> Iterator[None]:
    """
    Scope for one repository write.

    Commits on success and rolls back on error, unless an enclosing
    atomic() block already holds the transaction; then the outer block
    decides.
    """
    if conn.in_transaction:
        yield
        return
    with conn:
        yield


@contextmanager
def atomic(conn: sqlite3.Connection) -> Iterator[None]:
    """
    Run several repository writes as a single database transaction.

    Every write made on `conn` inside the block commits together, or none
    does. Nested blocks join the outer one.
    """
    if conn.in_transaction:
        yield
        return
    conn.execute("BEGIN")
    try:
        yield
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()
