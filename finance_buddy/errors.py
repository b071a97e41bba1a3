"""
Ledger Error Taxonomy

Every domain failure raised by the engine derives from LedgerError so
callers can render any of them with a single except clause.
"""

from decimal import Decimal
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .journal import UndoRecord


class LedgerError(Exception):
    """Base class for recoverable ledger failures"""


class AccountNotFoundError(LedgerError, LookupError):
    """Raised when an account id is missing from the store."""

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class InsufficientFundsError(LedgerError):
    """Raised when a withdrawal/transfer would drop balance below zero."""

    def __init__(self, account_id: int, balance: Decimal, amount: Decimal):
        self.account_id = account_id
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"Insufficient funds in account {account_id}. "
            f"Balance: {balance}, Required: {amount}"
        )


class SameAccountError(LedgerError):
    """Raised when a transfer names the same account on both sides."""

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__("Source and destination cannot be the same account")


class InvalidAmountError(LedgerError, ValueError):
    """Raised for disallowed negative amounts or balances out of range."""

    def __init__(self, amount: Decimal, message: Optional[str] = None):
        self.amount = amount
        super().__init__(message or f"Amount must not be negative, got {amount}")


class EmptyJournalError(LedgerError):
    """Raised by undo when there is nothing to undo."""

    def __init__(self):
        super().__init__("Nothing to undo")


class UndoRefusedError(LedgerError):
    """
    Raised when an undo record cannot be reversed

    The record has already been popped from the journal and is not put back.
    """

    def __init__(self, record: 'UndoRecord', reason: str):
        self.record = record
        self.reason = reason
        super().__init__(f"Cannot undo {record.op_kind.value.lower()}: {reason}")


class PersistenceError(LedgerError):
    """Raised when the ledger file cannot be written or read."""

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        super().__init__(message or f"Cannot access ledger file {path}")
