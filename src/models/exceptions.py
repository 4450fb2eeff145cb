"""Custom exceptions for the escrow system."""


class EscrowError(Exception):
    """Base exception for all recoverable escrow errors."""
    pass


class AccountNotFoundError(EscrowError):
    """Raised when an escrow account cannot be found."""
    pass


class AccountAlreadyExistsError(EscrowError):
    """Raised when attempting to open an escrow account that already exists."""
    pass


class AccountTerminatedError(EscrowError):
    """Raised when an operation is attempted on a terminated account."""
    pass


class InvalidAmountError(EscrowError):
    """Raised when an invalid amount is provided (e.g., negative amount)."""
    pass


class TransferAmountTooLargeError(EscrowError):
    """Raised when the fee for an amount cannot be computed without overflow."""
    pass


class InsufficientFundsError(EscrowError):
    """Raised when the spendable capacity does not exceed the requested amount."""

    def __init__(
        self,
        total_balance: int = 0,
        potential_balance: int = 0,
        requested_amount: int = 0,
        minimum_reserve: int = 0,
    ):
        super().__init__(
            f"Insufficient funds: balance {total_balance}, capacity {potential_balance}, "
            f"requested {requested_amount}, minimum reserve {minimum_reserve}"
        )
        self.total_balance = total_balance
        self.potential_balance = potential_balance
        self.requested_amount = requested_amount
        self.minimum_reserve = minimum_reserve


class CallerIsNotOwnerError(EscrowError):
    """Raised when someone other than the owner calls an owner-only operation."""
    pass


class NotYetExpiredError(EscrowError):
    """Raised when a time-gated operation is attempted before expiration."""
    pass


class WithdrawalFailedError(EscrowError):
    """Raised when withdrawing the savings would breach the minimum reserve."""
    pass


class TransferFault(Exception):
    """Raised by a ledger when it cannot move funds."""
    pass


class EscrowAbort(Exception):
    """
    Fatal fault: the ledger refused a transfer the account had already judged valid.

    Not an EscrowError. The operation is aborted with no effects and is never
    retried.
    """
    pass
