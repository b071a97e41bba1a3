"""
Operation Engine Module

Implements create/deposit/withdraw/transfer/undo against the ledger store.
Every forward operation validates first and mutates last, so a rejected
call leaves no trace, and every committed forward operation pushes one
record onto the undo journal.
"""

from contextlib import contextmanager
from decimal import Decimal
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Tuple, Union
from pathlib import Path
import threading

from .amounts import AmountLike, MAX_AMOUNT, to_amount
from .config import FinanceBuddyConfig, get_config
from .errors import (
    InsufficientFundsError, InvalidAmountError, SameAccountError, UndoRefusedError
)
from .journal import OperationKind, UndoJournal, UndoRecord
from .ledger import (
    Account, LedgerStore, Transaction, TransactionKind, normalize_account_name
)
from .logging_config import get_logger, log_action
from .storage import FlatFileStorage


class LedgerEngine:
    """
    Single entry point for every ledger operation

    All public methods run under one re-entrant lock, so the engine can be
    shared by concurrent callers such as the HTTP service.
    """

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        journal: Optional[UndoJournal] = None,
        config: Optional[FinanceBuddyConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store if store is not None else LedgerStore()
        self.journal = journal if journal is not None else UndoJournal()
        self.config = config or get_config()
        self.logger = get_logger("finance_buddy.engine")
        self._clock = clock or datetime.now
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Forward operations
    # ------------------------------------------------------------------

    def create_account(self, name: str, opening_balance: AmountLike) -> Account:
        """
        Create a new account

        The opening balance is recorded as a DEPOSIT transaction and the
        creation itself is pushed to the journal, so undoing it removes the
        account entirely.

        Args:
            name: Display name, normalized and truncated on entry
            opening_balance: Initial balance

        Returns:
            Created Account object
        """
        amount = self._validate_amount(opening_balance)
        with self._lock:
            account = Account(
                id=self.store.allocate_account_id(),
                name=normalize_account_name(name, self.config.name_max_length),
                balance=amount
            )
            self.store.add_account(account)
            account.record(self._new_transaction(TransactionKind.DEPOSIT, amount))
            self.journal.push(UndoRecord(OperationKind.CREATE, account.id, 0, amount))

            log_action(
                self.logger, "info", f"Created account {account.id}",
                action="create_account", resource=f"account:{account.id}",
                extra={"name": account.name, "opening_balance": str(amount)}
            )
            return account

    def deposit(self, account_id: int, amount: AmountLike) -> Transaction:
        """Add funds to an account"""
        amount = self._validate_amount(amount)
        with self._lock:
            account = self.store.get_account(account_id)
            self._check_balance(account, account.balance + amount)
            account.balance += amount
            transaction = self._new_transaction(TransactionKind.DEPOSIT, amount)
            account.record(transaction)
            self.journal.push(UndoRecord(OperationKind.DEPOSIT, account_id, 0, amount))

            self._log_committed("deposit", account, amount)
            return transaction

    def withdraw(self, account_id: int, amount: AmountLike) -> Transaction:
        """
        Remove funds from an account

        Raises:
            AccountNotFoundError: If the account does not exist
            InsufficientFundsError: If the balance is below the amount
            InvalidAmountError: If the resulting balance would be out of range
        """
        amount = self._validate_amount(amount)
        with self._lock:
            account = self.store.get_account(account_id)
            if account.balance < amount:
                raise InsufficientFundsError(account_id, account.balance, amount)
            self._check_balance(account, account.balance - amount)

            account.balance -= amount
            transaction = self._new_transaction(TransactionKind.WITHDRAW, amount)
            account.record(transaction)
            self.journal.push(UndoRecord(OperationKind.WITHDRAW, account_id, 0, amount))

            self._log_committed("withdraw", account, amount)
            return transaction

    def transfer(
        self,
        from_account_id: int,
        to_account_id: int,
        amount: AmountLike
    ) -> Tuple[Transaction, Transaction]:
        """
        Move funds between two accounts

        Each side gets its own TRANSFER transaction naming the other side
        as counterpart. One journal record covers both.

        Returns:
            (source transaction, destination transaction)

        Raises:
            SameAccountError: If both ids are equal
            AccountNotFoundError: If either account does not exist
            InsufficientFundsError: If the source balance is below the amount
        """
        if from_account_id == to_account_id:
            raise SameAccountError(from_account_id)
        amount = self._validate_amount(amount)

        with self._lock:
            from_account = self.store.get_account(from_account_id)
            to_account = self.store.get_account(to_account_id)
            if from_account.balance < amount:
                raise InsufficientFundsError(from_account_id, from_account.balance, amount)
            self._check_balance(from_account, from_account.balance - amount)
            self._check_balance(to_account, to_account.balance + amount)

            from_account.balance -= amount
            to_account.balance += amount
            from_tx = self._new_transaction(TransactionKind.TRANSFER, amount, to_account_id)
            to_tx = self._new_transaction(TransactionKind.TRANSFER, amount, from_account_id)
            from_account.record(from_tx)
            to_account.record(to_tx)
            self.journal.push(
                UndoRecord(OperationKind.TRANSFER, from_account_id, to_account_id, amount)
            )

            log_action(
                self.logger, "info",
                f"Transferred {amount} from account {from_account_id} to {to_account_id}",
                action="transfer", resource=f"account:{from_account_id}",
                extra={
                    "to_account_id": to_account_id,
                    "amount": str(amount),
                    "from_balance": str(from_account.balance),
                    "to_balance": str(to_account.balance)
                }
            )
            return from_tx, to_tx

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------

    def undo_last(self) -> UndoRecord:
        """
        Reverse the most recent forward operation

        The record is popped before anything is checked; a refused undo
        does not put it back. Only the single balance check per kind is
        made, nothing about operations that happened since.

        Returns:
            The UndoRecord that was reversed

        Raises:
            EmptyJournalError: If there is nothing to undo
            UndoRefusedError: If the reversal's precondition fails
        """
        with self._lock:
            record = self.journal.pop()
            handlers = {
                OperationKind.CREATE: self._undo_create,
                OperationKind.DEPOSIT: self._undo_deposit,
                OperationKind.WITHDRAW: self._undo_withdraw,
                OperationKind.TRANSFER: self._undo_transfer,
            }
            try:
                handlers[record.op_kind](record)
            except UndoRefusedError as e:
                log_action(
                    self.logger, "warning", str(e),
                    action=f"undo_{record.op_kind.value.lower()}_refused",
                    resource=f"account:{record.account_id}",
                    extra={"amount": str(record.amount), "reason": e.reason}
                )
                raise

            log_action(
                self.logger, "info",
                f"Undid {record.op_kind.value.lower()} on account {record.account_id}",
                action=f"undo_{record.op_kind.value.lower()}",
                resource=f"account:{record.account_id}",
                extra={
                    "amount": str(record.amount),
                    "counterpart_account_id": record.counterpart_account_id
                }
            )
            return record

    def _undo_create(self, record: UndoRecord) -> None:
        if record.account_id not in self.store:
            raise UndoRefusedError(record, f"account {record.account_id} not found")
        self.store.remove_account(record.account_id)

    def _undo_deposit(self, record: UndoRecord) -> None:
        account = self._account_for_undo(record, record.account_id)
        if account.balance < record.amount:
            raise UndoRefusedError(
                record, f"insufficient balance in account {record.account_id}"
            )
        self._check_undo_balance(record, account, account.balance - record.amount)
        account.balance -= record.amount
        account.record(self._new_transaction(TransactionKind.UNDO_DEPOSIT, record.amount))

    def _undo_withdraw(self, record: UndoRecord) -> None:
        account = self._account_for_undo(record, record.account_id)
        self._check_undo_balance(record, account, account.balance + record.amount)
        account.balance += record.amount
        account.record(self._new_transaction(TransactionKind.UNDO_WITHDRAW, record.amount))

    def _undo_transfer(self, record: UndoRecord) -> None:
        from_account = self._account_for_undo(record, record.account_id)
        to_account = self._account_for_undo(record, record.counterpart_account_id)
        if to_account.balance < record.amount:
            raise UndoRefusedError(
                record,
                f"insufficient balance in account {record.counterpart_account_id}"
            )
        self._check_undo_balance(record, from_account, from_account.balance + record.amount)
        from_account.balance += record.amount
        to_account.balance -= record.amount
        from_account.record(self._new_transaction(
            TransactionKind.UNDO_TRANSFER, record.amount, record.counterpart_account_id
        ))
        to_account.record(self._new_transaction(
            TransactionKind.UNDO_TRANSFER, record.amount, record.account_id
        ))

    def _account_for_undo(self, record: UndoRecord, account_id: int) -> Account:
        account = self.store.find_account(account_id)
        if account is None:
            raise UndoRefusedError(record, f"account {account_id} not found")
        return account

    def _check_undo_balance(
        self, record: UndoRecord, account: Account, new_balance: Decimal
    ) -> None:
        if abs(new_balance) > MAX_AMOUNT:
            raise UndoRefusedError(
                record, f"balance of account {account.id} would exceed {MAX_AMOUNT}"
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @contextmanager
    def locked(self) -> Iterator["LedgerEngine"]:
        """
        Hold the engine lock across several calls

        Lets a caller run an operation and read the resulting state with
        no other caller's change in between.
        """
        with self._lock:
            yield self

    def get_account(self, account_id: int) -> Account:
        """Get account by ID"""
        with self._lock:
            return self.store.get_account(account_id)

    def list_accounts(self) -> List[Account]:
        """All accounts, most recently created first"""
        with self._lock:
            return self.store.list_accounts()

    def show_transactions(self, account_id: int) -> List[Transaction]:
        """Transactions of one account, newest first"""
        with self._lock:
            return self.store.transactions(account_id)

    def total_balance(self) -> Decimal:
        """Sum of all account balances"""
        with self._lock:
            return self.store.total_balance()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Optional[Union[str, Path]] = None) -> int:
        """
        Write the whole ledger to path (default: configured data file)

        The undo journal is not written.
        """
        with self._lock:
            return FlatFileStorage(path or self.config.data_file).save(self.store)

    def load(self, path: Optional[Union[str, Path]] = None) -> bool:
        """
        Replace the ledger with the contents of path

        Returns False, leaving the ledger as it was, if the file does not
        exist. The undo journal is kept as is, so its records may name
        accounts the loaded data no longer has.
        """
        with self._lock:
            return FlatFileStorage(path or self.config.data_file).load(self.store)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_amount(self, value: AmountLike) -> Decimal:
        try:
            amount = to_amount(value)
        except ValueError as e:
            raise InvalidAmountError(value, str(e)) from e
        if amount < 0 and not self.config.allow_negative_amounts:
            raise InvalidAmountError(amount)
        return amount

    @staticmethod
    def _check_balance(account: Account, new_balance: Decimal) -> None:
        if abs(new_balance) > MAX_AMOUNT:
            raise InvalidAmountError(
                new_balance,
                f"Balance of account {account.id} would exceed {MAX_AMOUNT}"
            )

    def _new_transaction(
        self,
        kind: TransactionKind,
        amount: Decimal,
        counterpart_account_id: int = 0
    ) -> Transaction:
        return Transaction(
            id=self.store.allocate_transaction_id(),
            kind=kind,
            amount=amount,
            counterpart_account_id=counterpart_account_id,
            timestamp=self._clock().strftime(self.config.timestamp_format)
        )

    def _log_committed(self, action: str, account: Account, amount: Decimal) -> None:
        log_action(
            self.logger, "info", f"{action.capitalize()} of {amount} on account {account.id}",
            action=action, resource=f"account:{account.id}",
            extra={"amount": str(amount), "balance": str(account.balance)}
        )
