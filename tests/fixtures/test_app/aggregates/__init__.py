"""Test aggregates."""

from .bank_account import AccountOpened, BankAccount, MoneyDeposited, MoneyWithdrawn
from .counter import Counter, Incremented, Reset

__all__ = [
    "BankAccount",
    "AccountOpened",
    "MoneyDeposited",
    "MoneyWithdrawn",
    "Counter",
    "Incremented",
    "Reset",
]
