"""Dispatcher serializing calls into escrow accounts."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from src.ledger.sqlite_ledger import SQLiteLedger, wall_clock
from src.models.exceptions import InvalidAmountError, TransferFault
from src.models.transaction import Transaction
from src.repositories.balance_repo import BalanceRepository
from src.repositories.escrow_repo import EscrowRepository
from src.repositories.transaction_repo import TransactionRepository
from src.services.escrow_account import EscrowAccount

logger = logging.getLogger(__name__)


class EscrowDispatcher:
    """
    Front door for escrow operations.

    Each escrow account gets its own asyncio.Lock; a call holds the lock of
    the account it touches from start to finish, so calls into one account
    never interleave. The caller identity is bound into the ledger only for
    the duration of the call.
    """

    def __init__(
        self,
        balance_repo: BalanceRepository,
        escrow_repo: EscrowRepository,
        transaction_repo: TransactionRepository,
        minimum_reserve: int = 1_000_000,
        clock: Callable[[], int] = wall_clock,
    ):
        """
        Initialize the dispatcher with repositories.

        Args:
            balance_repo: Repository for ledger balances
            escrow_repo: Repository for escrow state
            transaction_repo: Repository for the transaction journal
            minimum_reserve: Minimum balance any live ledger account must keep
            clock: Callable returning the current time in milliseconds
        """
        self._balance_repo = balance_repo
        self._escrow_repo = escrow_repo
        self._transaction_repo = transaction_repo
        self._minimum_reserve = minimum_reserve
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    @staticmethod
    def escrow_id(owner: str) -> str:
        """Ledger id of the escrow owned by `owner`."""
        return f"escrow:{owner}"

    def _lock(self, account_id: str) -> asyncio.Lock:
        return self._locks.setdefault(account_id, asyncio.Lock())

    def _ledger(self, account_id: str) -> SQLiteLedger:
        return SQLiteLedger(
            self._balance_repo,
            account_id,
            minimum_reserve=self._minimum_reserve,
            clock=self._clock,
        )

    async def _call(
        self, account_id: str, caller: str, operation: Callable[[SQLiteLedger], Any]
    ) -> Any:
        async with self._lock(account_id):
            ledger = self._ledger(account_id)
            with ledger.as_caller(caller):
                return operation(ledger)

    def _load(self, ledger: SQLiteLedger) -> EscrowAccount:
        return EscrowAccount.load(
            ledger, ledger.account_id, self._escrow_repo, self._transaction_repo
        )

    async def open(self, owner: str, expiration: int, initial_deposit: int = 0) -> EscrowAccount:
        """
        Open the escrow account of `owner`, funded from the owner's balance.

        Raises:
            AccountAlreadyExistsError: If the owner already has an active escrow
            InvalidAmountError: If the expiration or deposit is invalid
        """
        return await self._call(
            self.escrow_id(owner),
            owner,
            lambda ledger: EscrowAccount.create(
                ledger,
                ledger.account_id,
                expiration,
                self._escrow_repo,
                self._transaction_repo,
                initial_deposit=initial_deposit,
            ),
        )

    async def spend(self, owner: str, destination: str, amount: int, memo: str = "") -> Transaction:
        """Spend from the escrow of `owner`."""
        return await self._call(
            self.escrow_id(owner),
            owner,
            lambda ledger: self._load(ledger).spend(destination, amount, memo),
        )

    async def withdraw_savings(self, caller: str, owner: str | None = None) -> Transaction:
        """Withdraw the savings of the escrow of `owner` (defaults to the caller's own)."""
        return await self._call(
            self.escrow_id(owner or caller),
            caller,
            lambda ledger: self._load(ledger).withdraw_savings(),
        )

    async def terminate(self, caller: str, owner: str | None = None) -> int:
        """Terminate the escrow of `owner` (defaults to the caller's own)."""
        return await self._call(
            self.escrow_id(owner or caller),
            caller,
            lambda ledger: self._load(ledger).terminate(),
        )

    async def status(self, owner: str) -> dict[str, Any]:
        """
        Summarize the escrow of `owner`.

        Returns:
            A dict with status, balance, saved, free and expiration; a
            terminated account only reports its status
        """

        def summarize(ledger: SQLiteLedger) -> dict[str, Any]:
            account = self._load(ledger)
            if account.is_terminated:
                return {"status": "terminated"}
            return {
                "status": "active",
                "balance": account.get_balance(),
                "saved": account.amount_stored(),
                "free": account.free(),
                "expiration": account.get_expiration(),
            }

        return await self._call(self.escrow_id(owner), owner, summarize)

    async def history(self, owner: str, n: int) -> list[Transaction]:
        """Recent N journal entries of the escrow of `owner`."""
        async with self._lock(self.escrow_id(owner)):
            return self._transaction_repo.find_by_account(self.escrow_id(owner), n)

    async def balance_of(self, account_id: str) -> int:
        """Ledger balance of a member account."""
        async with self._lock(account_id):
            return self._balance_repo.get_balance(account_id)

    async def mint(self, account_id: str, amount: int) -> int:
        """
        Credit a member account on the ledger.

        Returns:
            The new balance

        Raises:
            InvalidAmountError: If the amount is not positive or cannot be stored
        """
        if amount <= 0:
            raise InvalidAmountError("Mint amount must be greater than zero.")
        async with self._lock(account_id):
            ledger = self._ledger(account_id)
            try:
                ledger.credit(account_id, amount)
            except TransferFault as err:
                raise InvalidAmountError(str(err)) from err
            return ledger.balance_of(account_id)
