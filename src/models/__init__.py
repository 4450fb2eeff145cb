"""Data models for the escrow system."""

from .account import ACTIVE, TERMINATED, EscrowState
from .transaction import Transaction
from .exceptions import (
    EscrowError,
    AccountNotFoundError,
    AccountAlreadyExistsError,
    AccountTerminatedError,
    InvalidAmountError,
    TransferAmountTooLargeError,
    InsufficientFundsError,
    CallerIsNotOwnerError,
    NotYetExpiredError,
    WithdrawalFailedError,
    TransferFault,
    EscrowAbort,
)

__all__ = [
    "ACTIVE",
    "TERMINATED",
    "EscrowState",
    "Transaction",
    "EscrowError",
    "AccountNotFoundError",
    "AccountAlreadyExistsError",
    "AccountTerminatedError",
    "InvalidAmountError",
    "TransferAmountTooLargeError",
    "InsufficientFundsError",
    "CallerIsNotOwnerError",
    "NotYetExpiredError",
    "WithdrawalFailedError",
    "TransferFault",
    "EscrowAbort",
]
