"""
Storage Backend Module

Line-oriented flat-file codec for the ledger. One ACC record per account
and one TX record per transaction, fields separated by '|':

    ACC|<id>|<name>|<balance>
    TX|<account_id>|<tx_id>|<kind>|<amount>|<counterpart_id>|<timestamp>

Free-text fields are written as-is; names never contain the delimiter
because the entry boundary replaces it. All amounts are written with two
fractional digits.
"""

from typing import Dict, Iterable, Iterator, List, Tuple, Union
from pathlib import Path

from .amounts import format_amount, to_amount
from .errors import PersistenceError
from .ledger import Account, FIELD_DELIMITER, LedgerStore, Transaction, TransactionKind
from .logging_config import get_logger, log_action


ACCOUNT_TAG = "ACC"
TRANSACTION_TAG = "TX"
ACCOUNT_FIELD_COUNT = 4       # Including the tag
TRANSACTION_FIELD_COUNT = 7

logger = get_logger("finance_buddy.storage")


def encode_account(account: Account) -> str:
    """Serialize an account header line"""
    return FIELD_DELIMITER.join([
        ACCOUNT_TAG,
        str(account.id),
        account.name,
        format_amount(account.balance),
    ])


def encode_transaction(account_id: int, transaction: Transaction) -> str:
    """Serialize one transaction line owned by account_id"""
    return FIELD_DELIMITER.join([
        TRANSACTION_TAG,
        str(account_id),
        str(transaction.id),
        transaction.kind.value,
        format_amount(transaction.amount),
        str(transaction.counterpart_account_id),
        transaction.timestamp,
    ])


def encode_ledger(accounts: Iterable[Account]) -> Iterator[str]:
    """
    Serialize accounts, each followed by its transactions newest first
    """
    for account in accounts:
        yield encode_account(account)
        for transaction in account.transactions:
            yield encode_transaction(account.id, transaction)


def _parse_account(fields: List[str]) -> Account:
    return Account(
        id=int(fields[1]),
        name=fields[2],
        balance=to_amount(fields[3]),
    )


def _parse_transaction(fields: List[str]) -> Tuple[int, Transaction]:
    transaction = Transaction(
        id=int(fields[2]),
        kind=TransactionKind(fields[3]),
        amount=to_amount(fields[4]),
        counterpart_account_id=int(fields[5]),
        timestamp=fields[6],
    )
    return int(fields[1]), transaction


def _skip_line(line_number: int, line: str, reason: str) -> None:
    log_action(
        logger, "warning", f"Skipping line {line_number}: {reason}",
        action="ledger_line_skipped",
        extra={"line_number": line_number, "line": line}
    )


def decode_ledger(lines: Iterable[str]) -> List[Account]:
    """
    Rebuild accounts and their histories from serialized lines

    Records may appear in any order. Malformed lines are skipped, duplicate
    account ids keep the first record, and transactions whose owner has no
    ACC record are dropped. Each history comes back newest first, ordered
    by transaction id.

    Args:
        lines: Serialized lines, with or without trailing newlines

    Returns:
        Decoded Account objects in ascending id order
    """
    accounts: Dict[int, Account] = {}
    pending: List[Tuple[int, Transaction]] = []

    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.rstrip("\r\n")
        if not line.strip():
            continue

        fields = line.split(FIELD_DELIMITER)
        tag = fields[0]

        if tag == ACCOUNT_TAG:
            if len(fields) != ACCOUNT_FIELD_COUNT:
                _skip_line(line_number, line, "wrong field count")
                continue
            try:
                account = _parse_account(fields)
            except ValueError as e:
                _skip_line(line_number, line, str(e))
                continue
            if account.id in accounts:
                _skip_line(line_number, line, f"duplicate account {account.id}")
                continue
            accounts[account.id] = account

        elif tag == TRANSACTION_TAG:
            if len(fields) != TRANSACTION_FIELD_COUNT:
                _skip_line(line_number, line, "wrong field count")
                continue
            try:
                pending.append(_parse_transaction(fields))
            except ValueError as e:
                _skip_line(line_number, line, str(e))
                continue

        else:
            _skip_line(line_number, line, f"unknown record tag {tag!r}")

    # Attach after all ACC records are known so TX lines may come first
    dropped = 0
    for account_id, transaction in sorted(pending, key=lambda item: item[1].id):
        account = accounts.get(account_id)
        if account is None:
            dropped += 1
            continue
        account.record(transaction)

    if dropped:
        log_action(
            logger, "warning",
            f"Dropped {dropped} transaction(s) referencing unknown accounts",
            action="ledger_orphans_dropped",
            extra={"count": dropped}
        )

    return [accounts[account_id] for account_id in sorted(accounts)]


class FlatFileStorage:
    """
    Full-file save/load of a LedgerStore at a fixed path
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def save(self, store: LedgerStore) -> int:
        """
        Rewrite the file with the whole store

        Accounts are written oldest first. The in-memory store is never
        touched, whether or not the write succeeds.

        Returns:
            Number of lines written

        Raises:
            PersistenceError: If the file cannot be written
        """
        lines = list(encode_ledger(reversed(store.list_accounts())))
        try:
            with open(self.path, "w", encoding="utf-8", newline="\n") as f:
                for line in lines:
                    f.write(line + "\n")
        except OSError as e:
            log_action(
                logger, "error", f"Error saving ledger to {self.path}: {e}",
                action="ledger_save_failed", resource=str(self.path)
            )
            raise PersistenceError(str(self.path), f"Error opening file to save: {e}") from e

        log_action(
            logger, "info", f"Ledger saved to {self.path}",
            action="ledger_saved", resource=str(self.path),
            extra={"accounts": len(store), "lines": len(lines)}
        )
        return len(lines)

    def load(self, store: LedgerStore) -> bool:
        """
        Replace the store's contents with the file's

        A missing file means no prior data: the store is left untouched and
        False is returned. Otherwise every current account is discarded and
        the counters are recomputed from what was read.

        Raises:
            PersistenceError: If the file exists but cannot be read
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                accounts = decode_ledger(f)
        except FileNotFoundError:
            log_action(
                logger, "info", f"No ledger file at {self.path}, nothing loaded",
                action="ledger_load_skipped", resource=str(self.path)
            )
            return False
        except (OSError, UnicodeDecodeError) as e:
            log_action(
                logger, "error", f"Error loading ledger from {self.path}: {e}",
                action="ledger_load_failed", resource=str(self.path)
            )
            raise PersistenceError(str(self.path), f"Error reading ledger file: {e}") from e

        store.replace_contents(accounts)
        log_action(
            logger, "info", f"Ledger loaded from {self.path}",
            action="ledger_loaded", resource=str(self.path),
            extra={
                "accounts": len(store),
                "next_account_id": store.next_account_id,
                "next_tx_id": store.next_tx_id
            }
        )
        return True
