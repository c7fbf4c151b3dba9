from chronicle import TypeRegistry

from .aggregates import (
    AccountOpened,
    BankAccount,
    Counter,
    Incremented,
    MoneyDeposited,
    MoneyWithdrawn,
    Reset,
)


def build_registry() -> TypeRegistry:
    """Registry knowing every event and aggregate of the test application."""
    registry = TypeRegistry()
    for model in (
        AccountOpened,
        MoneyDeposited,
        MoneyWithdrawn,
        Incremented,
        Reset,
        BankAccount,
        Counter,
    ):
        registry.register(model)
    return registry
