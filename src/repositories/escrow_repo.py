"""Escrow repository for database operations."""

import sqlite3

from src.models.account import ACTIVE, TERMINATED, EscrowState
from src.models.exceptions import AccountAlreadyExistsError
from src.repositories.unit_of_work import write_transaction


class EscrowRepository:
    """Repository for EscrowState data access operations."""

    def __init__(self, conn: sqlite3.Connection):
        """
        Initialize the repository with a database connection.

        Args:
            conn: SQLite database connection
        """
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    def create_table(self) -> None:
        """Create the Escrows table if it doesn't exist."""
        cursor = self._conn.cursor()
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS Escrows (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                Account TEXT UNIQUE,
                Owner TEXT,
                Expiration INTEGER,
                Saved INTEGER,
                Status TEXT
            )
        """
        )
        self._conn.commit()

    def find_by_account_id(self, account_id: str) -> EscrowState | None:
        """
        Find an escrow account by its ledger account id.

        Args:
            account_id: The ledger account id of the escrow

        Returns:
            EscrowState if found, None otherwise
        """
        cursor = self._conn.cursor()
        cursor.execute(
            "SELECT id, Account, Owner, Expiration, Saved, Status FROM Escrows WHERE Account = ?",
            (account_id,),
        )
        row = cursor.fetchone()

        if row is None:
            return None

        return EscrowState(
            id=row["id"],
            account_id=row["Account"],
            owner=row["Owner"],
            expiration=row["Expiration"],
            saved_amount=row["Saved"],
            status=row["Status"],
        )

    def create(self, state: EscrowState) -> None:
        """
        Create a new escrow account record.

        Args:
            state: The EscrowState to persist

        Raises:
            AccountAlreadyExistsError: If an escrow with the same account id already exists
        """
        try:
            with write_transaction(self._conn):
                self._conn.execute(
                    """
                    INSERT INTO Escrows (Account, Owner, Expiration, Saved, Status)
                    VALUES (?, ?, ?, ?, ?)
                """,
                    (state.account_id, state.owner, state.expiration, state.saved_amount, state.status),
                )
        except sqlite3.IntegrityError:
            raise AccountAlreadyExistsError(f"Escrow {state.account_id} already exists")

    def exists(self, account_id: str) -> bool:
        """Check if an escrow record exists for the account id."""
        cursor = self._conn.cursor()
        cursor.execute("SELECT 1 FROM Escrows WHERE Account = ?", (account_id,))
        return cursor.fetchone() is not None

    def update_saved(self, account_id: str, saved_amount: int) -> None:
        """
        Overwrite the saved amount of an escrow.

        Args:
            account_id: The escrow account id
            saved_amount: The new saved amount
        """
        with write_transaction(self._conn):
            self._conn.execute(
                "UPDATE Escrows SET Saved = ? WHERE Account = ?",
                (saved_amount, account_id),
            )

    def mark_terminated(self, account_id: str) -> None:
        """Set the escrow status to terminated and clear its savings."""
        with write_transaction(self._conn):
            self._conn.execute(
                "UPDATE Escrows SET Status = ?, Saved = 0 WHERE Account = ?",
                (TERMINATED, account_id),
            )

    def reopen(self, state: EscrowState) -> None:
        """
        Reuse the record of a terminated escrow for a new account.

        Args:
            state: The fresh EscrowState; its account id must name a terminated escrow

        Raises:
            AccountAlreadyExistsError: If the existing escrow is still active
        """
        with write_transaction(self._conn):
            cursor = self._conn.execute(
                """
                UPDATE Escrows SET Owner = ?, Expiration = ?, Saved = ?, Status = ?
                WHERE Account = ? AND Status = ?
            """,
                (state.owner, state.expiration, state.saved_amount, ACTIVE,
                 state.account_id, TERMINATED),
            )
            if cursor.rowcount != 1:
                raise AccountAlreadyExistsError(f"Escrow {state.account_id} already exists")
