"""Tests for opening and reading escrow accounts."""

import sqlite3
import pytest

from src.ledger.sqlite_ledger import SQLiteLedger
from src.models.exceptions import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    InvalidAmountError,
)
from src.repositories.balance_repo import BalanceRepository
from src.repositories.escrow_repo import EscrowRepository
from src.repositories.transaction_repo import TransactionRepository
from src.services.escrow_account import EscrowAccount

OWNER = "alice"
ESCROW = "escrow:alice"
RESERVE = 1_000_000


@pytest.fixture
def in_memory_db():
    """Create an in-memory SQLite database for testing."""
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def balance_repo(in_memory_db):
    repo = BalanceRepository(in_memory_db)
    repo.create_table()
    return repo


@pytest.fixture
def escrow_repo(in_memory_db):
    repo = EscrowRepository(in_memory_db)
    repo.create_table()
    return repo


@pytest.fixture
def transaction_repo(in_memory_db):
    repo = TransactionRepository(in_memory_db)
    repo.create_table()
    return repo


@pytest.fixture
def clock():
    """Mutable ledger clock, in milliseconds."""
    return {"now": 0}


@pytest.fixture
def ledger(balance_repo, clock):
    """Ledger bound to the escrow account."""
    return SQLiteLedger(
        balance_repo, ESCROW, minimum_reserve=RESERVE, clock=lambda: clock["now"]
    )


def test_create_sets_owner_and_expiration(ledger, escrow_repo, transaction_repo):
    """The caller becomes the owner, savings start at zero."""
    with ledger.as_caller(OWNER):
        account = EscrowAccount.create(ledger, ESCROW, 5_000, escrow_repo, transaction_repo)

    assert account.owner == OWNER
    assert account.account_id == ESCROW
    assert account.get_expiration() == 5_000
    assert account.amount_stored() == 0
    assert account.get_balance() == 0
    assert account.free() == 0

    state = escrow_repo.find_by_account_id(ESCROW)
    assert state.owner == OWNER
    assert state.status == "active"


def test_create_with_past_expiration(ledger, clock, escrow_repo, transaction_repo):
    """Expiration is not validated against the clock."""
    clock["now"] = 10_000
    with ledger.as_caller(OWNER):
        account = EscrowAccount.create(ledger, ESCROW, 1, escrow_repo, transaction_repo)
    assert account.get_expiration() == 1


def test_create_with_initial_deposit(ledger, escrow_repo, transaction_repo):
    """The deposit moves from the owner into the account."""
    ledger.credit(OWNER, 101_000_000)

    with ledger.as_caller(OWNER):
        account = EscrowAccount.create(
            ledger, ESCROW, 1, escrow_repo, transaction_repo, initial_deposit=100_000_000
        )

    assert account.get_balance() == 100_000_000
    assert ledger.balance_of(OWNER) == 1_000_000
    entry = transaction_repo.find_by_account(ESCROW, 1)[0]
    assert entry.type == "create"
    assert entry.amount == 100_000_000


def test_create_with_unfunded_deposit(ledger, escrow_repo, transaction_repo):
    """A deposit the owner cannot cover leaves no account behind."""
    ledger.credit(OWNER, 5_000_000)

    with ledger.as_caller(OWNER):
        with pytest.raises(InvalidAmountError):
            EscrowAccount.create(
                ledger, ESCROW, 1, escrow_repo, transaction_repo, initial_deposit=10_000_000
            )

    assert not escrow_repo.exists(ESCROW)
    assert ledger.balance_of(OWNER) == 5_000_000
    assert ledger.current_balance() == 0


def test_create_twice(ledger, escrow_repo, transaction_repo):
    """Should raise AccountAlreadyExistsError."""
    with ledger.as_caller(OWNER):
        EscrowAccount.create(ledger, ESCROW, 1, escrow_repo, transaction_repo)
        with pytest.raises(AccountAlreadyExistsError):
            EscrowAccount.create(ledger, ESCROW, 2, escrow_repo, transaction_repo)

    assert escrow_repo.find_by_account_id(ESCROW).expiration == 1


@pytest.mark.parametrize("expiration", [-1, 2**64, "tomorrow", 1.5])
def test_create_invalid_expiration(ledger, escrow_repo, transaction_repo, expiration):
    """Should raise InvalidAmountError."""
    with ledger.as_caller(OWNER):
        with pytest.raises(InvalidAmountError):
            EscrowAccount.create(ledger, ESCROW, expiration, escrow_repo, transaction_repo)


def test_create_negative_deposit(ledger, escrow_repo, transaction_repo):
    """Should raise InvalidAmountError."""
    with ledger.as_caller(OWNER):
        with pytest.raises(InvalidAmountError):
            EscrowAccount.create(
                ledger, ESCROW, 1, escrow_repo, transaction_repo, initial_deposit=-5
            )


def test_create_requires_caller(ledger, escrow_repo, transaction_repo):
    """Construction outside a call has no owner."""
    with pytest.raises(RuntimeError):
        EscrowAccount.create(ledger, ESCROW, 1, escrow_repo, transaction_repo)


def test_load_missing_account(ledger, escrow_repo, transaction_repo):
    """Should raise AccountNotFoundError."""
    with pytest.raises(AccountNotFoundError) as exc_info:
        EscrowAccount.load(ledger, ESCROW, escrow_repo, transaction_repo)
    assert ESCROW in str(exc_info.value)


def test_free_excludes_reserve_and_savings(ledger, escrow_repo, transaction_repo):
    """Free balance saturates at zero."""
    with ledger.as_caller(OWNER):
        account = EscrowAccount.create(ledger, ESCROW, 1, escrow_repo, transaction_repo)
    ledger.credit("bob", RESERVE)

    ledger.credit(ESCROW, 500_000)
    assert account.free() == 0

    ledger.credit(ESCROW, 9_500_000)
    with ledger.as_caller(OWNER):
        account.spend("bob", 1_000_000)
    assert account.get_balance() == 9_000_000
    assert account.amount_stored() == 30_000
    assert account.free() == 9_000_000 - RESERVE - 30_000


def test_read_operations_need_no_caller(ledger, escrow_repo, transaction_repo):
    """Read-only operations run without a bound caller."""
    with ledger.as_caller(OWNER):
        account = EscrowAccount.create(ledger, ESCROW, 7, escrow_repo, transaction_repo)
    ledger.credit(ESCROW, 3_000_000)

    assert account.get_balance() == 3_000_000
    assert account.get_expiration() == 7
    assert account.amount_stored() == 0
    assert account.free() == 2_000_000


def test_create_after_terminate_opens_fresh_account(
    ledger, clock, escrow_repo, transaction_repo
):
    """A terminated escrow can be opened again with new terms."""
    ledger.credit(OWNER, 11_000_000)
    with ledger.as_caller(OWNER):
        old = EscrowAccount.create(
            ledger, ESCROW, 1, escrow_repo, transaction_repo, initial_deposit=10_000_000
        )
    clock["now"] = 2
    with ledger.as_caller(OWNER):
        old.terminate()
        account = EscrowAccount.create(
            ledger, ESCROW, 5_000, escrow_repo, transaction_repo, initial_deposit=3_000_000
        )

    assert not account.is_terminated
    assert account.get_expiration() == 5_000
    assert account.amount_stored() == 0
    assert account.get_balance() == 3_000_000
    assert ledger.balance_of(OWNER) == 8_000_000
    assert [t.type for t in transaction_repo.find_by_account(ESCROW, 10)] == [
        "create", "terminate", "create",
    ]


def test_create_rolls_back_when_journal_write_fails(
    ledger, escrow_repo, transaction_repo, monkeypatch
):
    """Neither the record nor the deposit survive a failed journal write."""
    ledger.credit(OWNER, 5_000_000)

    def fail_create(txn):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(transaction_repo, "create", fail_create)

    with ledger.as_caller(OWNER):
        with pytest.raises(sqlite3.OperationalError):
            EscrowAccount.create(
                ledger, ESCROW, 1, escrow_repo, transaction_repo, initial_deposit=2_000_000
            )

    assert not escrow_repo.exists(ESCROW)
    assert ledger.balance_of(OWNER) == 5_000_000
    assert ledger.current_balance() == 0
