"""
Ledger Store Module

Owns the live set of accounts and, per account, its newest-first
transaction history. Also owns the process-wide id counters, which are
re-derived from the data whenever the store is rebuilt from a file.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional
from enum import Enum

from .amounts import ZERO
from .errors import AccountNotFoundError


DEFAULT_NAME_MAX_LENGTH = 63
FIELD_DELIMITER = "|"
DELIMITER_REPLACEMENT = "/"


class TransactionKind(Enum):
    """Kinds of balance-affecting events recorded in an account history"""
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    TRANSFER = "TRANSFER"
    UNDO_DEPOSIT = "UNDO_DEPOSIT"      # Audit markers only, never reversed
    UNDO_WITHDRAW = "UNDO_WITHDRAW"
    UNDO_TRANSFER = "UNDO_TRANSFER"

    @property
    def has_counterpart(self) -> bool:
        """Check if records of this kind reference the other side of a transfer"""
        return self in (TransactionKind.TRANSFER, TransactionKind.UNDO_TRANSFER)


@dataclass(frozen=True)
class Transaction:
    """
    Immutable audit record of one balance-affecting event

    Owned by exclusively one account; a transfer produces two of these.
    """
    id: int
    kind: TransactionKind
    amount: Decimal
    counterpart_account_id: int  # 0 unless kind is TRANSFER/UNDO_TRANSFER
    timestamp: str


@dataclass
class Account:
    """
    Named balance-holding entity with an append-only history
    """
    id: int
    name: str
    balance: Decimal = ZERO
    transactions: List[Transaction] = field(default_factory=list)  # Newest first

    def record(self, transaction: Transaction) -> None:
        """Add a transaction at the head of the history"""
        self.transactions.insert(0, transaction)


def normalize_account_name(name: str, max_length: int = DEFAULT_NAME_MAX_LENGTH) -> str:
    """
    Apply the data-entry policy for account names

    Surrounding whitespace is stripped, line breaks become spaces, the
    persistence delimiter is replaced, and the result is cut to max_length
    characters.
    """
    cleaned = name.strip().replace("\r", " ").replace("\n", " ")
    cleaned = cleaned.replace(FIELD_DELIMITER, DELIMITER_REPLACEMENT)
    return cleaned[:max_length]


class LedgerStore:
    """
    Id-keyed collection of accounts plus the id counters
    """

    def __init__(self):
        # Insertion order is creation order; listing walks it backwards
        self._accounts: Dict[int, Account] = {}
        self.next_account_id = 1
        self.next_tx_id = 1

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, account_id: int) -> bool:
        return account_id in self._accounts

    def __iter__(self) -> Iterator[Account]:
        return iter(self.list_accounts())

    def allocate_account_id(self) -> int:
        """Hand out the next account id; ids are never handed out twice"""
        account_id = self.next_account_id
        self.next_account_id += 1
        return account_id

    def allocate_transaction_id(self) -> int:
        """Hand out the next globally unique transaction id"""
        tx_id = self.next_tx_id
        self.next_tx_id += 1
        return tx_id

    def find_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID, or None"""
        return self._accounts.get(account_id)

    def get_account(self, account_id: int) -> Account:
        """Get account by ID, raising AccountNotFoundError if absent"""
        account = self._accounts.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def add_account(self, account: Account) -> None:
        """Insert a new account; the caller supplies a fresh id"""
        if account.id in self._accounts:
            raise ValueError(f"Account {account.id} already exists")
        self._accounts[account.id] = account

    def remove_account(self, account_id: int) -> Account:
        """Remove an account and its whole history"""
        account = self.get_account(account_id)
        del self._accounts[account_id]
        return account

    def list_accounts(self) -> List[Account]:
        """All accounts, most recently created first"""
        return list(reversed(list(self._accounts.values())))

    def transactions(self, account_id: int) -> List[Transaction]:
        """Transactions of one account, newest first"""
        return list(self.get_account(account_id).transactions)

    def total_balance(self) -> Decimal:
        """Sum of all account balances"""
        return sum((account.balance for account in self._accounts.values()), ZERO)

    def replace_contents(self, accounts: Iterable[Account]) -> None:
        """
        Discard every account and rebuild from the given ones

        Accounts are inserted in ascending id order so listing order matches
        creation order, and both counters restart one above the largest id
        seen of each kind.
        """
        rebuilt = sorted(accounts, key=lambda account: account.id)

        self._accounts = {}
        max_account_id = 0
        max_tx_id = 0
        for account in rebuilt:
            self.add_account(account)
            max_account_id = max(max_account_id, account.id)
            for transaction in account.transactions:
                max_tx_id = max(max_tx_id, transaction.id)

        self.next_account_id = max_account_id + 1
        self.next_tx_id = max_tx_id + 1
