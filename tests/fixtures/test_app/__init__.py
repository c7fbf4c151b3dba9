"""Test application package."""

from .aggregates import (
    AccountOpened,
    BankAccount,
    Counter,
    Incremented,
    MoneyDeposited,
    MoneyWithdrawn,
    Reset,
)
from .registry import build_registry

__all__ = [
    "BankAccount",
    "AccountOpened",
    "MoneyDeposited",
    "MoneyWithdrawn",
    "Counter",
    "Incremented",
    "Reset",
    "build_registry",
]
