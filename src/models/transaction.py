"""Transaction journal data model."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Transaction:
    """Represents a journal entry for a completed escrow operation."""

    id: int | None
    type: str
    time: datetime
    account: str
    counterparty: str
    amount: int
    fee: int
    memo: str

    @classmethod
    def record(
        cls,
        type: str,
        account: str,
        counterparty: str,
        amount: int,
        fee: int = 0,
        memo: str = "",
    ) -> "Transaction":
        """
        Create an unsaved journal entry with current timestamp.

        Args:
            type: The operation (e.g., 'spend', 'withdraw_savings')
            account: The escrow account id
            counterparty: The account that received or sent funds
            amount: The amount moved
            fee: The fee withheld as savings
            memo: Transaction memo/note

        Returns:
            A new Transaction with id=None and current time
        """
        return cls(
            id=None,
            type=type,
            time=datetime.now(),
            account=account,
            counterparty=counterparty,
            amount=amount,
            fee=fee,
            memo=memo,
        )
