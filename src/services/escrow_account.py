"""Escrow account service: the forced-savings state machine."""

import logging

from src.ledger.environment import LedgerEnvironment
from src.models.account import ACTIVE, EscrowState
from src.models.exceptions import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    AccountTerminatedError,
    CallerIsNotOwnerError,
    EscrowAbort,
    InsufficientFundsError,
    InvalidAmountError,
    NotYetExpiredError,
    TransferAmountTooLargeError,
    TransferFault,
    WithdrawalFailedError,
)
from src.models.transaction import Transaction
from src.repositories.escrow_repo import EscrowRepository
from src.repositories.transaction_repo import TransactionRepository

logger = logging.getLogger(__name__)

# Fee withheld from every spend: 3%, rounded up.
FEE_NUMERATOR = 3
FEE_DENOMINATOR = 100

MAX_BALANCE = 2**128 - 1
MAX_TIMESTAMP = 2**64 - 1


def compute_fee(amount: int) -> int:
    """
    Fee withheld for spending `amount`, rounded up to a whole unit.

    Raises:
        TransferAmountTooLargeError: If the fee arithmetic leaves the balance range
    """
    scaled = amount * FEE_NUMERATOR
    if scaled > MAX_BALANCE:
        raise TransferAmountTooLargeError(
            f"Amount {amount} is too large to compute a fee for"
        )
    return -(-scaled // FEE_DENOMINATOR)


def saturating_sub(minuend: int, *subtrahends: int) -> int:
    """Subtract, flooring the result at zero."""
    return max(0, minuend - sum(subtrahends))


def _require_balance(amount, name: str = "Amount") -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"{name} must be an integer, got {amount!r}")
    if amount < 0:
        raise InvalidAmountError(
            f"Cannot use negative amount: {amount}. {name} must be positive."
        )
    if amount > MAX_BALANCE:
        raise InvalidAmountError(f"{name} {amount} exceeds the maximum balance of {MAX_BALANCE}")


class EscrowAccount:
    """
    Single-owner escrow account with forced savings.

    Every spend withholds a 3% fee inside the account as savings. Savings,
    and later the whole balance, can only be reclaimed by the owner once the
    expiration moment has passed. Balances, time and caller identity come
    from the ledger environment; this class only decides whether an
    operation is permitted and what amounts to move.

    Calls must be serialized by the caller (see EscrowDispatcher); the
    account does no locking of its own.
    """

    def __init__(
        self,
        ledger: LedgerEnvironment,
        state: EscrowState,
        escrow_repo: EscrowRepository,
        transaction_repo: TransactionRepository,
    ):
        self._ledger = ledger
        self._state = state
        self._escrow_repo = escrow_repo
        self._transaction_repo = transaction_repo

    @classmethod
    def create(
        cls,
        ledger: LedgerEnvironment,
        account_id: str,
        expiration: int,
        escrow_repo: EscrowRepository,
        transaction_repo: TransactionRepository,
        initial_deposit: int = 0,
    ) -> "EscrowAccount":
        """
        Open a new escrow account owned by the current caller.

        The expiration is not compared with the current time; an account
        that is already expired is valid. An id whose previous escrow was
        terminated can be opened again.

        Args:
            ledger: Ledger environment bound to the new account
            account_id: Ledger id of the new account
            expiration: Moment (ms) after which savings can be reclaimed
            escrow_repo: Repository persisting the escrow state
            transaction_repo: Repository for the transaction journal
            initial_deposit: Funds moved from the caller into the account

        Returns:
            The new EscrowAccount

        Raises:
            AccountAlreadyExistsError: If an active escrow with this id already exists
            InvalidAmountError: If the expiration or deposit is out of range,
                or the deposit could not be transferred
        """
        if isinstance(expiration, bool) or not isinstance(expiration, int) or not (
            0 <= expiration <= MAX_TIMESTAMP
        ):
            raise InvalidAmountError(f"Expiration {expiration!r} is not a valid timestamp")
        _require_balance(initial_deposit, "Initial deposit")

        owner = ledger.caller_identity()
        existing = escrow_repo.find_by_account_id(account_id)
        if existing is not None and not existing.is_terminated:
            raise AccountAlreadyExistsError(f"Escrow {account_id} already exists")

        state = EscrowState(
            id=0,  # ID will be set by database
            account_id=account_id,
            owner=owner,
            expiration=expiration,
            saved_amount=0,
            status=ACTIVE,
        )
        with ledger.atomic():
            # A terminated escrow leaves its record behind; the new account takes it over.
            if existing is None:
                escrow_repo.create(state)
            else:
                escrow_repo.reopen(state)

            if initial_deposit > 0:
                try:
                    ledger.deposit(owner, initial_deposit)
                except TransferFault as err:
                    raise InvalidAmountError(
                        f"Initial deposit of {initial_deposit} could not be transferred: {err}"
                    ) from err

            transaction_repo.create(
                Transaction.record(
                    type="create",
                    account=account_id,
                    counterparty=owner,
                    amount=initial_deposit,
                )
            )
        logger.info(
            "Opened escrow %s for %s, expiring at %s with deposit %s",
            account_id, owner, expiration, initial_deposit,
        )
        return cls(ledger, escrow_repo.find_by_account_id(account_id), escrow_repo, transaction_repo)

    @classmethod
    def load(
        cls,
        ledger: LedgerEnvironment,
        account_id: str,
        escrow_repo: EscrowRepository,
        transaction_repo: TransactionRepository,
    ) -> "EscrowAccount":
        """
        Load an existing escrow account.

        Raises:
            AccountNotFoundError: If no escrow exists with this id
        """
        state = escrow_repo.find_by_account_id(account_id)
        if state is None:
            raise AccountNotFoundError(f"Escrow {account_id} not found")
        return cls(ledger, state, escrow_repo, transaction_repo)

    @property
    def account_id(self) -> str:
        return self._state.account_id

    @property
    def owner(self) -> str:
        return self._state.owner

    @property
    def is_terminated(self) -> bool:
        return self._state.is_terminated

    def _guard_active(self) -> None:
        if self._state.is_terminated:
            raise AccountTerminatedError(f"Escrow {self._state.account_id} has been terminated")

    def _guard_owner_after_expiration(self) -> None:
        caller = self._ledger.caller_identity()
        if caller != self._state.owner:
            raise CallerIsNotOwnerError(
                f"{caller} is not the owner of escrow {self._state.account_id}"
            )
        now = self._ledger.current_time()
        if now < self._state.expiration:
            raise NotYetExpiredError(
                f"Escrow {self._state.account_id} expires at {self._state.expiration}, now is {now}"
            )

    def spend(self, destination: str, amount: int, memo: str = "") -> Transaction:
        """
        Pay `amount` to `destination`, withholding the fee as savings.

        The fee stays in the account. The spend is rejected unless the
        balance left after paying the amount, the fee and the reserve is
        strictly positive.

        Args:
            destination: Ledger account receiving the payment
            amount: Amount to pay
            memo: Transaction memo/note

        Returns:
            The journal entry of the spend

        Raises:
            AccountTerminatedError: If the account has been terminated
            InvalidAmountError: If the amount is negative or not an integer
            TransferAmountTooLargeError: If the fee cannot be computed
            InsufficientFundsError: If the capacity does not exceed the amount
            EscrowAbort: If the ledger refuses the transfer
        """
        self._guard_active()
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidAmountError(
                f"Cannot spend amount {amount!r}. Amount must be a positive integer."
            )

        balance = self._ledger.current_balance()
        fee = compute_fee(amount)
        reserve = self._ledger.minimum_reserve()
        capacity = saturating_sub(balance, reserve, fee)

        if capacity <= amount:
            raise InsufficientFundsError(
                total_balance=balance,
                potential_balance=capacity,
                requested_amount=amount,
                minimum_reserve=reserve,
            )

        saved = self._state.saved_amount + fee
        with self._ledger.atomic():
            try:
                self._ledger.transfer(destination, amount)
            except TransferFault as err:
                logger.error(
                    "Ledger refused spend of %s from %s to %s: %s",
                    amount, self._state.account_id, destination, err,
                )
                raise EscrowAbort(
                    f"Spend of {amount} to {destination} aborted by the ledger"
                ) from err

            self._escrow_repo.update_saved(self._state.account_id, saved)
            txn_id = self._transaction_repo.create(
                Transaction.record(
                    type="spend",
                    account=self._state.account_id,
                    counterparty=destination,
                    amount=amount,
                    fee=fee,
                    memo=memo,
                )
            )
        self._state.saved_amount = saved
        logger.info(
            "Escrow %s spent %s to %s, withheld %s",
            self._state.account_id, amount, destination, fee,
        )
        return self._transaction_repo.find_by_id(txn_id)

    def withdraw_savings(self) -> Transaction:
        """
        Send all accumulated savings to the owner.

        Owner only, and only once the account has expired. The whole saved
        amount is withdrawn or nothing is.

        Returns:
            The journal entry of the withdrawal

        Raises:
            AccountTerminatedError: If the account has been terminated
            CallerIsNotOwnerError: If the caller is not the owner
            NotYetExpiredError: If the expiration has not been reached
            WithdrawalFailedError: If the withdrawal would breach the reserve
            EscrowAbort: If the ledger refuses the transfer
        """
        self._guard_active()
        self._guard_owner_after_expiration()

        saved = self._state.saved_amount
        balance = self._ledger.current_balance()
        reserve = self._ledger.minimum_reserve()
        if saturating_sub(balance, saved) < reserve:
            raise WithdrawalFailedError(
                f"Withdrawing {saved} from a balance of {balance} would breach "
                f"the minimum reserve of {reserve}"
            )

        with self._ledger.atomic():
            try:
                self._ledger.transfer(self._state.owner, saved)
            except TransferFault as err:
                logger.error(
                    "Ledger refused withdrawal of %s from %s: %s",
                    saved, self._state.account_id, err,
                )
                raise EscrowAbort(f"Withdrawal of {saved} aborted by the ledger") from err

            self._escrow_repo.update_saved(self._state.account_id, 0)
            txn_id = self._transaction_repo.create(
                Transaction.record(
                    type="withdraw_savings",
                    account=self._state.account_id,
                    counterparty=self._state.owner,
                    amount=saved,
                )
            )
        self._state.saved_amount = 0
        logger.info("Escrow %s released %s savings to owner", self._state.account_id, saved)
        return self._transaction_repo.find_by_id(txn_id)

    def terminate(self) -> int:
        """
        Delete the account and flush its entire balance to the owner.

        Owner only, after expiration. This is the only operation that does
        not keep the minimum reserve. The account is unusable afterwards.

        Returns:
            The amount flushed to the owner

        Raises:
            AccountTerminatedError: If the account has already been terminated
            CallerIsNotOwnerError: If the caller is not the owner
            NotYetExpiredError: If the expiration has not been reached
        """
        self._guard_active()
        self._guard_owner_after_expiration()

        with self._ledger.atomic():
            flushed = self._ledger.terminate_and_flush(self._state.owner)
            self._escrow_repo.mark_terminated(self._state.account_id)
            self._transaction_repo.create(
                Transaction.record(
                    type="terminate",
                    account=self._state.account_id,
                    counterparty=self._state.owner,
                    amount=flushed,
                )
            )
        self._state = self._escrow_repo.find_by_account_id(self._state.account_id)
        logger.info(
            "Escrow %s terminated, %s flushed to %s",
            self._state.account_id, flushed, self._state.owner,
        )
        return flushed

    claim_funds = terminate

    def free(self) -> int:
        """Amount spendable without touching savings or the reserve."""
        self._guard_active()
        return saturating_sub(
            self._ledger.current_balance(),
            self._ledger.minimum_reserve(),
            self._state.saved_amount,
        )

    def amount_stored(self) -> int:
        self._guard_active()
        return self._state.saved_amount

    def get_balance(self) -> int:
        self._guard_active()
        return self._ledger.current_balance()

    def get_expiration(self) -> int:
        self._guard_active()
        return self._state.expiration
