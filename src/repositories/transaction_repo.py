"""Transaction repository for database operations."""

import sqlite3
from datetime import datetime

from src.models.transaction import Transaction
from src.repositories.unit_of_work import write_transaction


class TransactionRepository:
    """Repository for Transaction journal access operations."""

    def __init__(self, conn: sqlite3.Connection):
        """
        Initialize the repository with a database connection.

        Args:
            conn: SQLite database connection
        """
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    def create_table(self) -> None:
        """Create the Transactions table if it doesn't exist."""
        cursor = self._conn.cursor()
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS Transactions (
                TransactionID INTEGER PRIMARY KEY AUTOINCREMENT,
                Type TEXT,
                Time TEXT,
                Account TEXT,
                Counterparty TEXT,
                Amount INTEGER,
                Fee INTEGER,
                Memo TEXT
            )
        """
        )
        self._conn.commit()

    def create(self, txn: Transaction) -> int:
        """
        Create a new journal entry.

        Args:
            txn: The Transaction object to create

        Returns:
            The ID of the newly created transaction
        """
        with write_transaction(self._conn):
            cursor = self._conn.execute(
                """
                INSERT INTO Transactions (Type, Time, Account, Counterparty, Amount, Fee, Memo)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    txn.type,
                    txn.time.isoformat(),
                    txn.account,
                    txn.counterparty,
                    txn.amount,
                    txn.fee,
                    txn.memo,
                ),
            )
        return cursor.lastrowid

    def _from_row(self, row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["TransactionID"],
            type=row["Type"],
            time=datetime.fromisoformat(row["Time"]),
            account=row["Account"],
            counterparty=row["Counterparty"],
            amount=row["Amount"],
            fee=row["Fee"],
            memo=row["Memo"],
        )

    def find_by_id(self, txn_id: int) -> Transaction | None:
        """
        Find a transaction by ID.

        Args:
            txn_id: The transaction ID to search for

        Returns:
            Transaction object if found, None otherwise
        """
        cursor = self._conn.cursor()
        cursor.execute(
            """SELECT TransactionID, Type, Time, Account, Counterparty, Amount, Fee, Memo
               FROM Transactions WHERE TransactionID = ?""",
            (txn_id,),
        )
        row = cursor.fetchone()

        if row is None:
            return None

        return self._from_row(row)

    def find_by_account(self, account_id: str, limit: int) -> list[Transaction]:
        """
        Find the most recent journal entries of an escrow account.

        Args:
            account_id: The escrow account id
            limit: Maximum number of transactions to return

        Returns:
            List of transactions ordered by TransactionID DESC
        """
        cursor = self._conn.cursor()
        cursor.execute(
            """SELECT TransactionID, Type, Time, Account, Counterparty, Amount, Fee, Memo
               FROM Transactions
               WHERE Account = ?
               ORDER BY TransactionID DESC LIMIT ?""",
            (account_id, limit),
        )
        return [self._from_row(row) for row in cursor.fetchall()]
