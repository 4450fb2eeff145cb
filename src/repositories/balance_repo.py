"""Balance repository for ledger database operations."""

import sqlite3

from src.repositories.unit_of_work import atomic, write_transaction


class BalanceRepository:
    """Repository for ledger balances keyed by account id."""

    def __init__(self, conn: sqlite3.Connection):
        """
        Initialize the repository with a database connection.

        Args:
            conn: SQLite database connection
        """
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    def create_table(self) -> None:
        """Create the Balances table if it doesn't exist."""
        cursor = self._conn.cursor()
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS Balances (
                Account TEXT PRIMARY KEY,
                Balance INTEGER NOT NULL
            )
        """
        )
        self._conn.commit()

    def get_balance(self, account_id: str) -> int:
        """
        Get the balance of an account.

        Args:
            account_id: The ledger account id

        Returns:
            The stored balance, or 0 if the account has no row
        """
        cursor = self._conn.cursor()
        cursor.execute("SELECT Balance FROM Balances WHERE Account = ?", (account_id,))
        row = cursor.fetchone()
        return 0 if row is None else row["Balance"]

    def exists(self, account_id: str) -> bool:
        """Check if the ledger holds a row for the account."""
        cursor = self._conn.cursor()
        cursor.execute("SELECT 1 FROM Balances WHERE Account = ?", (account_id,))
        return cursor.fetchone() is not None

    def set_balances(self, balances: dict[str, int]) -> None:
        """
        Write several balances in one database transaction.

        Either every row is written or, if any statement fails, none is.
        Inside atomic() the rows join the enclosing transaction.

        Args:
            balances: Mapping of account id to its new balance
        """
        with write_transaction(self._conn):
            for account_id, balance in balances.items():
                self._conn.execute(
                    """
                    INSERT INTO Balances (Account, Balance) VALUES (?, ?)
                    ON CONFLICT(Account) DO UPDATE SET Balance = excluded.Balance
                """,
                    (account_id, balance),
                )

    def move_all(self, source: str, destination: str) -> int:
        """
        Delete the source row and credit its whole balance to the destination.

        Args:
            source: The account being removed from the ledger
            destination: The account receiving the balance

        Returns:
            The amount moved
        """
        amount = self.get_balance(source)
        credited = self.get_balance(destination) + amount
        with write_transaction(self._conn):
            self._conn.execute("DELETE FROM Balances WHERE Account = ?", (source,))
            self._conn.execute(
                """
                INSERT INTO Balances (Account, Balance) VALUES (?, ?)
                ON CONFLICT(Account) DO UPDATE SET Balance = excluded.Balance
            """,
                (destination, credited),
            )
        return amount

    def atomic(self):
        """Scope in which every write on this connection commits together."""
        return atomic(self._conn)
