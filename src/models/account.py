"""Escrow account data model."""

from dataclasses import dataclass

ACTIVE = "active"
TERMINATED = "terminated"


@dataclass
class EscrowState:
    """Persistent fields of an escrow account."""

    id: int
    account_id: str
    owner: str
    expiration: int
    saved_amount: int
    status: str = ACTIVE

    @property
    def is_terminated(self) -> bool:
        """Whether the account has been terminated and flushed."""
        return self.status == TERMINATED
