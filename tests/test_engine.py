"""
Test suite for the operation engine

Covers the forward operations, the undo dispatch for every record kind,
atomicity of rejected calls, and the balance conservation properties.
"""

import threading
import pytest
from decimal import Decimal
from datetime import datetime

from finance_buddy.amounts import MAX_AMOUNT
from finance_buddy.config import FinanceBuddyConfig
from finance_buddy.engine import LedgerEngine
from finance_buddy.errors import (
    AccountNotFoundError, EmptyJournalError, InsufficientFundsError,
    InvalidAmountError, SameAccountError, UndoRefusedError
)
from finance_buddy.journal import OperationKind, UndoRecord
from finance_buddy.ledger import TransactionKind


FIXED_TIME = datetime(2024, 1, 2, 3, 4, 5)


def make_engine(**config_overrides) -> LedgerEngine:
    config = FinanceBuddyConfig(**config_overrides)
    return LedgerEngine(config=config, clock=lambda: FIXED_TIME)


class TestForwardOperations:
    """Test create, deposit, withdraw and transfer"""

    def setup_method(self):
        """Set up test fixtures"""
        self.engine = make_engine()

    def test_create_account(self):
        """Test account creation records the opening deposit"""
        account = self.engine.create_account("Alice", Decimal('100.00'))

        assert account.id == 1
        assert account.name == "Alice"
        assert account.balance == Decimal('100.00')
        assert len(account.transactions) == 1
        tx = account.transactions[0]
        assert tx.kind == TransactionKind.DEPOSIT
        assert tx.amount == Decimal('100.00')
        assert tx.counterpart_account_id == 0
        assert tx.timestamp == "2024-01-02 03:04:05"
        assert self.engine.journal.peek() == UndoRecord(
            OperationKind.CREATE, 1, 0, Decimal('100.00')
        )

    def test_create_account_truncates_name(self):
        """Test the configured name length is enforced"""
        account = self.engine.create_account("N" * 80, "0")
        assert account.name == "N" * 63

        short_engine = make_engine(name_max_length=5)
        assert short_engine.create_account("Abcdefgh", "0").name == "Abcde"

    def test_deposit(self):
        """Test deposit increases balance and journals the operation"""
        self.engine.create_account("Alice", "100")
        tx = self.engine.deposit(1, Decimal('50.00'))

        assert self.engine.get_account(1).balance == Decimal('150.00')
        assert tx.kind == TransactionKind.DEPOSIT
        assert tx.id == 2
        assert self.engine.show_transactions(1)[0] == tx
        assert self.engine.journal.peek() == UndoRecord(
            OperationKind.DEPOSIT, 1, 0, Decimal('50.00')
        )

    def test_deposit_unknown_account(self):
        """Test deposit to a missing account leaves everything untouched"""
        with pytest.raises(AccountNotFoundError):
            self.engine.deposit(5, "10")
        assert len(self.engine.journal) == 0
        assert self.engine.store.next_tx_id == 1

    def test_withdraw(self):
        """Test withdraw decreases balance"""
        self.engine.create_account("Alice", "100")
        tx = self.engine.withdraw(1, "30")

        assert self.engine.get_account(1).balance == Decimal('70.00')
        assert tx.kind == TransactionKind.WITHDRAW
        assert self.engine.journal.peek().op_kind == OperationKind.WITHDRAW

    def test_withdraw_entire_balance(self):
        """Test balance may reach exactly zero"""
        self.engine.create_account("Alice", "100")
        self.engine.withdraw(1, "100")
        assert self.engine.get_account(1).balance == Decimal('0.00')

    def test_withdraw_insufficient_funds(self):
        """Test overdrawing is rejected before mutation"""
        self.engine.create_account("Alice", "150")
        journal_size = len(self.engine.journal)

        with pytest.raises(InsufficientFundsError) as exc_info:
            self.engine.withdraw(1, "200")

        assert exc_info.value.balance == Decimal('150.00')
        assert exc_info.value.amount == Decimal('200.00')
        account = self.engine.get_account(1)
        assert account.balance == Decimal('150.00')
        assert len(account.transactions) == 1
        assert len(self.engine.journal) == journal_size

    def test_withdraw_unknown_account(self):
        """Test withdraw from a missing account"""
        with pytest.raises(AccountNotFoundError):
            self.engine.withdraw(3, "1")

    def test_transfer(self):
        """Test transfer moves funds and records both sides"""
        self.engine.create_account("Alice", "100")
        self.engine.create_account("Bob", "0")

        from_tx, to_tx = self.engine.transfer(1, 2, "40")

        assert self.engine.get_account(1).balance == Decimal('60.00')
        assert self.engine.get_account(2).balance == Decimal('40.00')
        assert from_tx.kind == TransactionKind.TRANSFER
        assert from_tx.counterpart_account_id == 2
        assert to_tx.counterpart_account_id == 1
        assert from_tx.id != to_tx.id
        assert self.engine.show_transactions(1)[0] == from_tx
        assert self.engine.show_transactions(2)[0] == to_tx
        assert self.engine.journal.peek() == UndoRecord(
            OperationKind.TRANSFER, 1, 2, Decimal('40.00')
        )

    def test_transfer_same_account(self):
        """Test transfer to self is rejected"""
        self.engine.create_account("Alice", "100")
        with pytest.raises(SameAccountError):
            self.engine.transfer(1, 1, "10")
        assert self.engine.get_account(1).balance == Decimal('100.00')

    def test_transfer_missing_accounts(self):
        """Test transfer with either side missing"""
        self.engine.create_account("Alice", "100")
        with pytest.raises(AccountNotFoundError):
            self.engine.transfer(1, 9, "10")
        with pytest.raises(AccountNotFoundError):
            self.engine.transfer(9, 1, "10")
        assert self.engine.get_account(1).balance == Decimal('100.00')
        assert len(self.engine.get_account(1).transactions) == 1

    def test_transfer_insufficient_funds(self):
        """Test transfer larger than the source balance"""
        self.engine.create_account("Alice", "10")
        self.engine.create_account("Bob", "0")
        with pytest.raises(InsufficientFundsError):
            self.engine.transfer(1, 2, "10.01")
        assert self.engine.get_account(1).balance == Decimal('10.00')
        assert self.engine.get_account(2).balance == Decimal('0.00')
        assert len(self.engine.get_account(2).transactions) == 1

    def test_transaction_ids_are_global(self):
        """Test transaction ids are unique across accounts"""
        self.engine.create_account("Alice", "100")
        self.engine.create_account("Bob", "100")
        self.engine.deposit(2, "1")
        self.engine.transfer(1, 2, "5")

        ids = [t.id for a in self.engine.list_accounts() for t in a.transactions]
        assert sorted(ids) == [1, 2, 3, 4, 5]

    def test_list_accounts_order(self):
        """Test most recently created accounts come first"""
        for name in ["A", "B", "C"]:
            self.engine.create_account(name, "0")
        assert [a.name for a in self.engine.list_accounts()] == ["C", "B", "A"]


class TestNegativeAmounts:
    """Test the configurable handling of negative amounts"""

    def test_permissive_by_default(self):
        """Test negative opening balance and deposit are accepted"""
        engine = make_engine()
        account = engine.create_account("Debtor", "-20")
        engine.deposit(account.id, "-5")
        assert account.balance == Decimal('-25.00')

    def test_strict_mode_rejects_negative(self):
        """Test negative amounts are rejected when disabled"""
        engine = make_engine(allow_negative_amounts=False)
        with pytest.raises(InvalidAmountError):
            engine.create_account("Debtor", "-20")
        assert len(engine.list_accounts()) == 0

        engine.create_account("Alice", "10")
        for operation in (engine.deposit, engine.withdraw):
            with pytest.raises(InvalidAmountError):
                operation(1, "-1")
        assert engine.get_account(1).balance == Decimal('10.00')
        assert len(engine.journal) == 1


class TestUndo:
    """Test undo of every operation kind"""

    def setup_method(self):
        """Set up test fixtures"""
        self.engine = make_engine()

    def test_nothing_to_undo(self):
        """Test undo on an empty journal"""
        with pytest.raises(EmptyJournalError):
            self.engine.undo_last()

    def test_undo_create_removes_account(self):
        """Test undoing a creation deletes the account and keeps its id retired"""
        self.engine.create_account("Alice", "100")
        record = self.engine.undo_last()

        assert record.op_kind == OperationKind.CREATE
        assert self.engine.list_accounts() == []
        with pytest.raises(AccountNotFoundError):
            self.engine.get_account(1)

        account = self.engine.create_account("Bob", "0")
        assert account.id == 2

    def test_undo_create_after_account_gone(self):
        """Test undoing a creation whose account no longer exists"""
        self.engine.create_account("Alice", "100")
        self.engine.store.remove_account(1)
        with pytest.raises(UndoRefusedError):
            self.engine.undo_last()
        assert len(self.engine.journal) == 0

    def test_undo_deposit(self):
        """Test undoing a deposit subtracts and writes an audit marker"""
        self.engine.create_account("Alice", "100")
        self.engine.deposit(1, "50")
        self.engine.undo_last()

        account = self.engine.get_account(1)
        assert account.balance == Decimal('100.00')
        latest = account.transactions[0]
        assert latest.kind == TransactionKind.UNDO_DEPOSIT
        assert latest.amount == Decimal('50.00')
        assert len(account.transactions) == 3

    def test_undo_deposit_refused_consumes_record(self):
        """Test a deposit cannot be undone once the funds have moved"""
        engine = self.engine
        engine.create_account("Alice", "0")
        engine.deposit(1, "50")
        engine.withdraw(1, "30")
        engine.journal.pop()  # Forget the withdrawal, keep its effect

        assert engine.journal.peek().op_kind == OperationKind.DEPOSIT
        journal_size = len(engine.journal)
        with pytest.raises(UndoRefusedError) as exc_info:
            engine.undo_last()

        assert exc_info.value.record.op_kind == OperationKind.DEPOSIT
        assert engine.get_account(1).balance == Decimal('20.00')
        assert len(engine.journal) == journal_size - 1

    def test_undo_withdraw(self):
        """Test undoing a withdrawal adds the amount back"""
        self.engine.create_account("Alice", "100")
        self.engine.withdraw(1, "30")
        self.engine.undo_last()

        account = self.engine.get_account(1)
        assert account.balance == Decimal('100.00')
        assert account.transactions[0].kind == TransactionKind.UNDO_WITHDRAW
        assert account.transactions[0].amount == Decimal('30.00')

    def test_undo_transfer(self):
        """Test undoing a transfer reverses both balances"""
        self.engine.create_account("Alice", "100")
        self.engine.create_account("Bob", "0")
        self.engine.transfer(1, 2, "40")
        self.engine.undo_last()

        alice = self.engine.get_account(1)
        bob = self.engine.get_account(2)
        assert alice.balance == Decimal('100.00')
        assert bob.balance == Decimal('0.00')
        assert alice.transactions[0].kind == TransactionKind.UNDO_TRANSFER
        assert alice.transactions[0].counterpart_account_id == 2
        assert bob.transactions[0].kind == TransactionKind.UNDO_TRANSFER
        assert bob.transactions[0].counterpart_account_id == 1

    def test_undo_transfer_refused_when_destination_spent(self):
        """Test a transfer is not undone if the destination moved the funds"""
        self.engine.create_account("Alice", "100")
        self.engine.create_account("Bob", "0")
        self.engine.transfer(1, 2, "40")
        self.engine.withdraw(2, "25")
        self.engine.journal.pop()  # Forget the withdrawal, keep its effect

        with pytest.raises(UndoRefusedError):
            self.engine.undo_last()

        assert self.engine.get_account(1).balance == Decimal('60.00')
        assert self.engine.get_account(2).balance == Decimal('15.00')
        assert self.engine.get_account(2).transactions[0].kind == TransactionKind.WITHDRAW
        assert len(self.engine.journal) == 2

    def test_undo_transfer_refused_when_account_removed(self):
        """Test a transfer naming a removed account is refused"""
        self.engine.create_account("Alice", "100")
        self.engine.create_account("Bob", "0")
        self.engine.transfer(1, 2, "40")
        self.engine.store.remove_account(2)

        with pytest.raises(UndoRefusedError):
            self.engine.undo_last()
        assert self.engine.get_account(1).balance == Decimal('60.00')

    def test_undo_is_lifo(self):
        """Test a single undo reverses exactly the latest operation"""
        self.engine.create_account("Alice", "100")
        self.engine.create_account("Bob", "100")
        self.engine.deposit(1, "10")
        self.engine.withdraw(2, "20")
        self.engine.transfer(1, 2, "5")

        self.engine.undo_last()

        assert self.engine.get_account(1).balance == Decimal('110.00')
        assert self.engine.get_account(2).balance == Decimal('80.00')
        assert self.engine.journal.peek().op_kind == OperationKind.WITHDRAW

    def test_undo_everything(self):
        """Test unwinding the whole journal returns to an empty ledger"""
        self.engine.create_account("Alice", "100")
        self.engine.create_account("Bob", "5")
        self.engine.deposit(1, "10")
        self.engine.transfer(2, 1, "5")
        self.engine.withdraw(1, "50")

        while len(self.engine.journal):
            self.engine.undo_last()

        assert self.engine.list_accounts() == []
        assert self.engine.total_balance() == Decimal('0.00')


class TestBalanceProperties:
    """Test conservation of the total balance"""

    def test_total_tracks_deposits_and_withdrawals(self):
        """Test transfers are zero-sum and the total moves only with cash in/out"""
        engine = make_engine()
        openings = [Decimal('100.00'), Decimal('25.50'), Decimal('0.00')]
        for index, opening in enumerate(openings):
            engine.create_account(f"Account {index}", opening)

        operations = [
            ("deposit", 1, Decimal('10.00')),
            ("transfer", (1, 2), Decimal('35.25')),
            ("withdraw", 2, Decimal('12.75')),
            ("transfer", (2, 3), Decimal('40.00')),
            ("deposit", 3, Decimal('0.05')),
            ("transfer", (3, 1), Decimal('1.00')),
            ("withdraw", 1, Decimal('3.00')),
        ]
        expected = sum(openings)
        for name, target, amount in operations:
            if name == "deposit":
                engine.deposit(target, amount)
                expected += amount
            elif name == "withdraw":
                engine.withdraw(target, amount)
                expected -= amount
            else:
                engine.transfer(target[0], target[1], amount)
            assert engine.total_balance() == expected
            assert all(a.balance >= 0 for a in engine.list_accounts())

    def test_undo_restores_total(self):
        """Test each successful undo restores the pre-operation total"""
        engine = make_engine()
        engine.create_account("Alice", "100")
        engine.create_account("Bob", "50")

        for operation, args in [
            (engine.deposit, (1, "20")),
            (engine.withdraw, (2, "10")),
            (engine.transfer, (1, 2, "30")),
        ]:
            before = engine.total_balance()
            operation(*args)
            engine.undo_last()
            assert engine.total_balance() == before


class TestScenario:
    """Walk through the reference session end to end"""

    def test_reference_session(self):
        """Test create, deposit, failed withdraw, undo, transfer, undo"""
        engine = make_engine()

        alice = engine.create_account("Alice", Decimal('100.00'))
        assert alice.id == 1
        assert alice.balance == Decimal('100.00')
        assert [t.kind for t in alice.transactions] == [TransactionKind.DEPOSIT]

        engine.deposit(1, Decimal('50.00'))
        assert alice.balance == Decimal('150.00')

        with pytest.raises(InsufficientFundsError):
            engine.withdraw(1, Decimal('200.00'))
        assert alice.balance == Decimal('150.00')

        engine.undo_last()
        assert alice.balance == Decimal('100.00')
        assert alice.transactions[0].kind == TransactionKind.UNDO_DEPOSIT
        assert alice.transactions[0].amount == Decimal('50.00')

        bob = engine.create_account("Bob", Decimal('0.00'))
        assert bob.id == 2

        engine.transfer(1, 2, Decimal('40.00'))
        assert alice.balance == Decimal('60.00')
        assert bob.balance == Decimal('40.00')
        assert alice.transactions[0].kind == TransactionKind.TRANSFER
        assert alice.transactions[0].counterpart_account_id == 2
        assert bob.transactions[0].kind == TransactionKind.TRANSFER
        assert bob.transactions[0].counterpart_account_id == 1

        engine.undo_last()
        assert alice.balance == Decimal('100.00')
        assert bob.balance == Decimal('0.00')


class TestAmountLimits:
    """Test amounts and balances stay within the representable range"""

    def setup_method(self):
        """Set up test fixtures"""
        self.engine = make_engine()

    def test_oversized_amount_rejected(self):
        """Test amounts beyond the limit raise InvalidAmountError"""
        with pytest.raises(InvalidAmountError):
            self.engine.create_account("A", Decimal('9' * 26))
        assert self.engine.list_accounts() == []
        assert len(self.engine.journal) == 0

    def test_deposit_past_limit_rejected(self):
        """Test a deposit that would overflow the balance leaves it unchanged"""
        self.engine.create_account("A", MAX_AMOUNT)
        with pytest.raises(InvalidAmountError):
            self.engine.deposit(1, "0.01")

        account = self.engine.get_account(1)
        assert account.balance == MAX_AMOUNT
        assert len(account.transactions) == 1
        assert len(self.engine.journal) == 1

    def test_transfer_past_limit_rejected(self):
        """Test the destination balance is checked before either side moves"""
        self.engine.create_account("Rich", MAX_AMOUNT)
        self.engine.create_account("Sender", "10")
        with pytest.raises(InvalidAmountError):
            self.engine.transfer(2, 1, "5")
        assert self.engine.get_account(2).balance == Decimal('10.00')
        assert self.engine.get_account(1).balance == MAX_AMOUNT

    def test_negative_withdraw_past_limit_rejected(self):
        """Test a negative withdrawal cannot push a balance over the limit"""
        self.engine.create_account("A", MAX_AMOUNT)
        with pytest.raises(InvalidAmountError):
            self.engine.withdraw(1, "-1")
        assert self.engine.get_account(1).balance == MAX_AMOUNT

    def test_undo_past_limit_refused(self):
        """Test an undo that would overflow a balance is refused"""
        self.engine.create_account("A", "10")
        self.engine.withdraw(1, "10")
        self.engine.get_account(1).balance = MAX_AMOUNT

        with pytest.raises(UndoRefusedError):
            self.engine.undo_last()
        assert self.engine.get_account(1).balance == MAX_AMOUNT

    def test_garbage_amount_is_invalid_amount(self):
        """Test unparseable engine input is reported as a ledger error"""
        self.engine.create_account("A", "10")
        with pytest.raises(InvalidAmountError):
            self.engine.deposit(1, "lots")


class TestLocking:
    """Test the engine lock can span several calls"""

    def test_locked_blocks_other_callers(self):
        """Test another thread waits until the lock is released"""
        engine = make_engine()
        engine.create_account("A", "10")
        done = threading.Event()

        def deposit_in_background():
            engine.deposit(1, "5")
            done.set()

        with engine.locked():
            worker = threading.Thread(target=deposit_in_background)
            worker.start()
            assert not done.wait(0.2)
            assert engine.get_account(1).balance == Decimal('10.00')

        worker.join(timeout=5)
        assert done.is_set()
        assert engine.get_account(1).balance == Decimal('15.00')
