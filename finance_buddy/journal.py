"""
Undo Journal Module

LIFO stack of minimal reversal instructions. Records reference accounts
by id only and are never persisted, so a reload leaves whatever history
was in memory in place.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import List, Optional
from enum import Enum

from .errors import EmptyJournalError


class OperationKind(Enum):
    """Forward operations that can be undone"""
    CREATE = "CREATE"
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    TRANSFER = "TRANSFER"


@dataclass(frozen=True)
class UndoRecord:
    """
    Enough information to reverse one forward operation
    """
    op_kind: OperationKind
    account_id: int
    counterpart_account_id: int  # Transfer destination, 0 otherwise
    amount: Decimal


class UndoJournal:
    """
    Strict LIFO stack of undo records
    """

    def __init__(self):
        self._records: List[UndoRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)

    def push(self, record: UndoRecord) -> None:
        """Push the record of a committed forward operation"""
        self._records.append(record)

    def pop(self) -> UndoRecord:
        """Remove and return the most recent record"""
        if not self._records:
            raise EmptyJournalError()
        return self._records.pop()

    def peek(self) -> Optional[UndoRecord]:
        """Most recent record without removing it"""
        if not self._records:
            return None
        return self._records[-1]

    def clear(self) -> None:
        self._records.clear()
