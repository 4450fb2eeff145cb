"""SQLite-backed ledger environment."""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime

from src.ledger.environment import LedgerEnvironment
from src.models.exceptions import TransferFault
from src.repositories.balance_repo import BalanceRepository

logger = logging.getLogger(__name__)

# SQLite INTEGER columns are signed 64-bit.
MAX_STORED_BALANCE = 2**63 - 1


def wall_clock() -> int:
    """Current wall-clock time in milliseconds."""
    return int(datetime.now().timestamp() * 1000)


class SQLiteLedger(LedgerEnvironment):
    """Ledger environment for one account, with balances held in SQLite."""

    def __init__(
        self,
        balance_repo: BalanceRepository,
        account_id: str,
        minimum_reserve: int = 1_000_000,
        clock: Callable[[], int] = wall_clock,
    ):
        """
        Initialize the ledger view of a single account.

        Args:
            balance_repo: Repository holding every ledger balance
            account_id: The account this environment is bound to
            minimum_reserve: Minimum balance any live account must keep
            clock: Callable returning the current time in milliseconds
        """
        self._balance_repo = balance_repo
        self._account_id = account_id
        self._minimum_reserve = minimum_reserve
        self._clock = clock
        self._caller: str | None = None

    @property
    def account_id(self) -> str:
        return self._account_id

    @contextmanager
    def as_caller(self, caller: str) -> Iterator["SQLiteLedger"]:
        """Bind the caller identity for the duration of one call."""
        previous = self._caller
        self._caller = caller
        try:
            yield self
        finally:
            self._caller = previous

    def caller_identity(self) -> str:
        if self._caller is None:
            raise RuntimeError("No caller is bound to the ledger")
        return self._caller

    def current_balance(self) -> int:
        return self._balance_repo.get_balance(self._account_id)

    def minimum_reserve(self) -> int:
        return self._minimum_reserve

    def current_time(self) -> int:
        return self._clock()

    def balance_of(self, account_id: str) -> int:
        """Balance of any account on the ledger."""
        return self._balance_repo.get_balance(account_id)

    def credit(self, account_id: str, amount: int) -> None:
        """
        Mint funds into an account.

        Raises:
            TransferFault: If the amount is negative or the result cannot be stored
        """
        if amount < 0:
            raise TransferFault(f"Cannot credit negative amount {amount}")
        balance = self._balance_repo.get_balance(account_id) + amount
        if balance > MAX_STORED_BALANCE:
            raise TransferFault(f"Balance of {account_id} would exceed {MAX_STORED_BALANCE}")
        self._balance_repo.set_balances({account_id: balance})
        logger.info("Credited %s to %s", amount, account_id)

    def transfer(self, destination: str, amount: int) -> None:
        self.move(self._account_id, destination, amount)

    def deposit(self, source: str, amount: int) -> None:
        """Move funds from another account into this one."""
        self.move(source, self._account_id, amount)

    def move(self, source: str, destination: str, amount: int) -> None:
        """
        Move funds between two ledger accounts atomically.

        Both accounts must keep at least the minimum reserve afterwards.

        Raises:
            TransferFault: If the transfer cannot be honored
        """
        if amount < 0:
            raise TransferFault(f"Cannot transfer negative amount {amount}")
        if source == destination:
            raise TransferFault("Cannot transfer to the same account")
        if amount == 0:
            return

        source_balance = self._balance_repo.get_balance(source)
        if amount > source_balance:
            raise TransferFault(
                f"Insufficient balance: {source_balance} available, {amount} requested"
            )
        if source_balance - amount < self._minimum_reserve:
            raise TransferFault(
                f"Transfer would leave {source} below the minimum reserve of {self._minimum_reserve}"
            )

        destination_balance = self._balance_repo.get_balance(destination) + amount
        if destination_balance < self._minimum_reserve:
            raise TransferFault(
                f"{destination} cannot receive {amount}: balance would stay below "
                f"the minimum reserve of {self._minimum_reserve}"
            )
        if destination_balance > MAX_STORED_BALANCE:
            raise TransferFault(f"Balance of {destination} would exceed {MAX_STORED_BALANCE}")

        self._balance_repo.set_balances(
            {source: source_balance - amount, destination: destination_balance}
        )
        logger.debug("Moved %s from %s to %s", amount, source, destination)

    def atomic(self):
        """
        Single SQLite transaction on the ledger connection.

        Repositories sharing that connection join it, so escrow state and
        journal writes commit with the balance changes.
        """
        return self._balance_repo.atomic()

    def terminate_and_flush(self, beneficiary: str) -> int:
        amount = self._balance_repo.move_all(self._account_id, beneficiary)
        logger.info("Terminated %s, flushed %s to %s", self._account_id, amount, beneficiary)
        return amount
