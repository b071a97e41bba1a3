"""
Interactive Menu Module

Numbered-menu front end over LedgerEngine. All prompting, number parsing
and rendering lives here; the engine never prints.
"""

from decimal import Decimal
from typing import Callable, Optional

from .amounts import decimal_from_string, format_amount
from .engine import LedgerEngine
from .errors import EmptyJournalError, LedgerError
from .journal import OperationKind, UndoRecord
from .logging_config import get_logger


MENU = """
--- Finance Buddy ---
1) Create account
2) List accounts
3) Deposit
4) Withdraw
5) Transfer
6) View transactions
7) Undo last operation
8) Save data
9) Load data
0) Exit"""


class LedgerShell:
    """
    Read-dispatch-print loop for the ledger

    input_func and output default to the console and are swapped for
    scripted ones in tests. End of input is treated like choosing Exit.
    """

    def __init__(
        self,
        engine: LedgerEngine,
        data_file: Optional[str] = None,
        input_func: Optional[Callable[[str], str]] = None,
        output: Optional[Callable[[str], None]] = None
    ):
        self.engine = engine
        self.data_file = data_file or engine.config.data_file
        self._input = input_func or (lambda prompt: input(prompt))
        self._output = output or (lambda line: print(line))
        self.logger = get_logger("finance_buddy.cli")
        self._actions = {
            "1": self.create_account,
            "2": self.list_accounts,
            "3": self.deposit,
            "4": self.withdraw,
            "5": self.transfer,
            "6": self.show_transactions,
            "7": self.undo,
            "8": self.save,
            "9": self.load,
        }

    def run(self) -> None:
        """Run until the user exits or input ends"""
        if self.engine.config.autoload_on_start:
            self._guarded(self._load_quietly)
        self._output(f"Welcome to Finance Buddy (Data file: {self.data_file})")

        while True:
            self._output(MENU)
            try:
                choice = self._input("Choose: ").strip()
            except EOFError:
                choice = "0"

            if choice == "0":
                if self.engine.config.autosave_on_exit:
                    self._guarded(self.save)
                self._output("Exiting.")
                return

            action = self._actions.get(choice)
            if action is None:
                self._output("Invalid choice.")
                continue
            try:
                self._guarded(action)
            except EOFError:
                # Input ran out mid-prompt; leave through the exit path
                if self.engine.config.autosave_on_exit:
                    self._guarded(self.save)
                self._output("Exiting.")
                return

    # ------------------------------------------------------------------
    # Menu actions
    # ------------------------------------------------------------------

    def create_account(self) -> None:
        name = self._input("Enter account holder name: ")
        opening_balance = self._read_amount("Enter opening balance: ")
        if opening_balance is None:
            return
        account = self.engine.create_account(name, opening_balance)
        self._output(f"Created account {account.name} with ID {account.id}")

    def list_accounts(self) -> None:
        self._output("Accounts:")
        accounts = self.engine.list_accounts()
        if not accounts:
            self._output("  (no accounts yet)")
            return
        for account in accounts:
            self._output(
                f"  ID:{account.id}  Name:{account.name}  "
                f"Balance:{format_amount(account.balance)}"
            )

    def deposit(self) -> None:
        account_id = self._read_int("Account ID: ")
        if account_id is None:
            return
        amount = self._read_amount("Amount to deposit: ")
        if amount is None:
            return
        self.engine.deposit(account_id, amount)
        self._output(f"Deposited {format_amount(amount)} to account {account_id}")

    def withdraw(self) -> None:
        account_id = self._read_int("Account ID: ")
        if account_id is None:
            return
        amount = self._read_amount("Amount to withdraw: ")
        if amount is None:
            return
        self.engine.withdraw(account_id, amount)
        self._output(f"Withdrawn {format_amount(amount)} from account {account_id}")

    def transfer(self) -> None:
        from_id = self._read_int("From account ID: ")
        if from_id is None:
            return
        to_id = self._read_int("To account ID: ")
        if to_id is None:
            return
        amount = self._read_amount("Amount to transfer: ")
        if amount is None:
            return
        self.engine.transfer(from_id, to_id, amount)
        self._output(f"Transferred {format_amount(amount)} from {from_id} to {to_id}")

    def show_transactions(self) -> None:
        account_id = self._read_int("Account ID: ")
        if account_id is None:
            return
        account = self.engine.get_account(account_id)
        transactions = self.engine.show_transactions(account_id)
        self._output(f"Transactions for {account.name} (ID {account.id}) [newest first]:")
        if not transactions:
            self._output("  (no transactions)")
            return
        for tx in transactions:
            line = f"  #{tx.id} [{tx.timestamp}] {tx.kind.value} {format_amount(tx.amount)}"
            if tx.kind.has_counterpart:
                line += f"  to/from acc {tx.counterpart_account_id}"
            self._output(line)

    def undo(self) -> None:
        try:
            record = self.engine.undo_last()
        except EmptyJournalError:
            self._output("Nothing to undo.")
            return
        self._output(describe_undo(record))

    def save(self) -> None:
        self.engine.save(self.data_file)
        self._output(f"Data saved to {self.data_file}")

    def load(self) -> None:
        if self.engine.load(self.data_file):
            self._output("Data loaded.")
        else:
            self._output(f"No data file at {self.data_file}; nothing loaded.")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_quietly(self) -> None:
        self.engine.load(self.data_file)

    def _guarded(self, action: Callable[[], None]) -> None:
        """Run one action, rendering domain errors instead of raising them"""
        try:
            action()
        except LedgerError as e:
            self.logger.debug(f"{action.__name__} failed: {e}")
            self._output(f"{e}.")

    def _read_int(self, prompt: str) -> Optional[int]:
        raw = self._input(prompt).strip()
        try:
            return int(raw)
        except ValueError:
            self._output(f"Invalid number: {raw!r}")
            return None

    def _read_amount(self, prompt: str) -> Optional[Decimal]:
        raw = self._input(prompt)
        try:
            return decimal_from_string(raw)
        except ValueError:
            self._output(f"Invalid amount: {raw.strip()!r}")
            return None


def describe_undo(record: UndoRecord) -> str:
    """Human-readable line for a successfully reversed record"""
    amount = format_amount(record.amount)
    if record.op_kind == OperationKind.DEPOSIT:
        return f"Undid deposit of {amount} from account {record.account_id}"
    if record.op_kind == OperationKind.WITHDRAW:
        return f"Undid withdraw of {amount} to account {record.account_id}"
    if record.op_kind == OperationKind.TRANSFER:
        return (
            f"Undid transfer of {amount} from {record.account_id} "
            f"to {record.counterpart_account_id}"
        )
    return f"Undid creation of account {record.account_id}"
