"""Tests for EscrowRepository."""

import sqlite3
import pytest

from src.models.account import EscrowState
from src.models.exceptions import AccountAlreadyExistsError
from src.repositories.escrow_repo import EscrowRepository


@pytest.fixture
def in_memory_db():
    """Create an in-memory SQLite database for testing."""
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def escrow_repo(in_memory_db):
    """Create an EscrowRepository instance with a fresh database."""
    repo = EscrowRepository(in_memory_db)
    repo.create_table()
    return repo


def make_state(account_id="escrow:alice", owner="alice"):
    return EscrowState(
        id=0,
        account_id=account_id,
        owner=owner,
        expiration=1_000,
        saved_amount=0,
    )


def test_create_table(escrow_repo):
    """Verify Escrows table is created."""
    cursor = escrow_repo._conn.cursor()
    cursor.execute("PRAGMA table_info(Escrows)")
    columns = {row[1]: row[2] for row in cursor.fetchall()}
    assert columns == {
        "id": "INTEGER",
        "Account": "TEXT",
        "Owner": "TEXT",
        "Expiration": "INTEGER",
        "Saved": "INTEGER",
        "Status": "TEXT",
    }


def test_create_escrow(escrow_repo):
    """Create escrow, then find by account id."""
    escrow_repo.create(make_state())

    found = escrow_repo.find_by_account_id("escrow:alice")
    assert found is not None
    assert found.id == 1
    assert found.owner == "alice"
    assert found.expiration == 1_000
    assert found.saved_amount == 0
    assert found.status == "active"


def test_create_duplicate_escrow(escrow_repo):
    """Should raise AccountAlreadyExistsError."""
    escrow_repo.create(make_state())

    with pytest.raises(AccountAlreadyExistsError) as exc_info:
        escrow_repo.create(make_state(owner="mallory"))

    assert "escrow:alice" in str(exc_info.value)
    assert escrow_repo.find_by_account_id("escrow:alice").owner == "alice"


def test_find_not_found(escrow_repo):
    """Return None for a missing escrow."""
    assert escrow_repo.find_by_account_id("escrow:nobody") is None


def test_exists(escrow_repo):
    """Check existence."""
    assert not escrow_repo.exists("escrow:alice")
    escrow_repo.create(make_state())
    assert escrow_repo.exists("escrow:alice")


def test_update_saved(escrow_repo):
    """Saved amount is overwritten, not added."""
    escrow_repo.create(make_state())

    escrow_repo.update_saved("escrow:alice", 60_000)
    escrow_repo.update_saved("escrow:alice", 2_760_000)

    assert escrow_repo.find_by_account_id("escrow:alice").saved_amount == 2_760_000


def test_mark_terminated(escrow_repo):
    """Termination flips the status and clears savings."""
    escrow_repo.create(make_state())
    escrow_repo.update_saved("escrow:alice", 60_000)

    escrow_repo.mark_terminated("escrow:alice")

    found = escrow_repo.find_by_account_id("escrow:alice")
    assert found.is_terminated
    assert found.saved_amount == 0


def test_reopen_terminated_escrow(escrow_repo):
    """A terminated record takes the terms of the new account."""
    escrow_repo.create(make_state())
    escrow_repo.mark_terminated("escrow:alice")
    original_id = escrow_repo.find_by_account_id("escrow:alice").id

    fresh = make_state()
    fresh.expiration = 9_000
    escrow_repo.reopen(fresh)

    found = escrow_repo.find_by_account_id("escrow:alice")
    assert found.id == original_id
    assert found.expiration == 9_000
    assert found.saved_amount == 0
    assert not found.is_terminated


def test_reopen_active_escrow(escrow_repo):
    """Should raise AccountAlreadyExistsError and leave the record alone."""
    escrow_repo.create(make_state())
    escrow_repo.update_saved("escrow:alice", 60_000)

    with pytest.raises(AccountAlreadyExistsError):
        escrow_repo.reopen(make_state())

    assert escrow_repo.find_by_account_id("escrow:alice").saved_amount == 60_000
