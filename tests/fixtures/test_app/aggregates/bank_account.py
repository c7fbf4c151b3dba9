"""Bank account aggregate and events for testing."""

from decimal import Decimal

from chronicle import ChangeEvent, EventSourcedAggregate, applies_event


# Events
class AccountOpened(ChangeEvent):
    owner: str


class MoneyDeposited(ChangeEvent):
    amount: Decimal


class MoneyWithdrawn(ChangeEvent):
    amount: Decimal


# Aggregate
class BankAccount(EventSourcedAggregate):
    balance: Decimal = Decimal("0.00")
    owner: str = ""

    def open(self, owner: str) -> None:
        if self.owner:
            raise ValueError("Account already opened")
        self.causes(AccountOpened(owner=owner))

    def deposit(self, amount: Decimal) -> None:
        if amount <= 0:
            raise ValueError("Amount must be positive")
        self.causes(MoneyDeposited(amount=amount))

    def withdraw(self, amount: Decimal) -> None:
        if amount <= 0:
            raise ValueError("Amount must be positive")
        if amount > self.balance:
            raise ValueError("Insufficient funds")
        self.causes(MoneyWithdrawn(amount=amount))

    @applies_event
    def apply_opened(self, evt: AccountOpened) -> None:
        self.owner = evt.owner

    @applies_event
    def apply_deposited(self, event: MoneyDeposited) -> None:
        self.balance += event.amount

    @applies_event
    def apply_withdrawn(self, event: MoneyWithdrawn) -> None:
        self.balance -= event.amount
