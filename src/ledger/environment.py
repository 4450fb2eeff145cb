"""Ledger environment consumed by escrow accounts."""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager


class LedgerEnvironment(ABC):
    """
    Collaborator interface an escrow account runs against.

    A ledger environment is bound to one account ("this account") and
    supplies the facts the account cannot know itself: who is calling, what
    the account holds, the protocol reserve and the current time. It also
    performs the actual movement of funds.
    """

    @abstractmethod
    def caller_identity(self) -> str:
        """Identity of the current call's invoker."""

    @abstractmethod
    def current_balance(self) -> int:
        """Total funds currently held by this account."""

    @abstractmethod
    def minimum_reserve(self) -> int:
        """Protocol-wide minimum balance every live account must keep."""

    @abstractmethod
    def current_time(self) -> int:
        """Current ledger time in milliseconds."""

    @abstractmethod
    def transfer(self, destination: str, amount: int) -> None:
        """
        Move funds out of this account.

        Raises:
            TransferFault: If the source lacks funds, or the transfer would
                leave either side below the minimum reserve
        """

    @abstractmethod
    def deposit(self, source: str, amount: int) -> None:
        """
        Move funds from `source` into this account.

        Used once, to fund an account at creation.

        Raises:
            TransferFault: Under the same conditions as transfer
        """

    @abstractmethod
    def terminate_and_flush(self, beneficiary: str) -> int:
        """
        Delete this account and send its entire balance to the beneficiary.

        Returns:
            The amount flushed
        """

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Scope of one call: every ledger movement and account-state write
        made inside commits together, or none does.

        Environments whose host already runs each call atomically can keep
        this default, which adds nothing.
        """
        yield
