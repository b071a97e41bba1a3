"""
Finance Buddy

An in-memory personal-finance ledger with per-account transaction
histories, a LIFO undo journal, and flat-file persistence.
"""

__version__ = "1.0.0"
