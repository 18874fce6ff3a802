"""Credit ledger models."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class TransactionType(Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(Enum):
    """Why credits moved."""

    CONNECTION = "connection"
    VALIDATION = "validation"
    DEPOSIT = "deposit"
    REFUND = "refund"


@dataclass(frozen=True)
class LedgerTransaction:
    """One balance movement.

    Attributes:
        owner_id: The account whose balance changed.
        amount: Signed credit delta, negative for debits.
        type: Credit or debit.
        category: Reason for the movement.
        description: Human readable note.
        balance_before: Balance prior to the movement.
        balance_after: Balance after the movement.
        created_at: When the movement was recorded.
        related_id: Session or other entity the movement concerns.
        id: Row id, None before insertion.
    """

    owner_id: str
    amount: int
    type: TransactionType
    category: TransactionCategory
    description: str
    balance_before: int
    balance_after: int
    created_at: datetime
    related_id: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.owner_id:
            raise ValueError("owner_id cannot be empty")
        if self.balance_after != self.balance_before + self.amount:
            raise ValueError("balance_after must equal balance_before + amount")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "type": self.type.value,
            "category": self.category.value,
            "description": self.description,
            "relatedId": self.related_id,
            "balanceBefore": self.balance_before,
            "balanceAfter": self.balance_after,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class LedgerStats:
    """Lifetime usage of one owner.

    ``connections_created`` and ``numbers_validated`` count charges, so an
    operation that failed and was refunded still counts once; the refund
    shows up in ``total_refunded``.
    """

    owner_id: str
    current_balance: int
    total_spent: int = 0
    total_deposited: int = 0
    total_refunded: int = 0
    connections_created: int = 0
    numbers_validated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentBalance": self.current_balance,
            "totalSpent": self.total_spent,
            "totalDeposited": self.total_deposited,
            "totalRefunded": self.total_refunded,
            "connectionsCreated": self.connections_created,
            "numbersValidated": self.numbers_validated,
        }
