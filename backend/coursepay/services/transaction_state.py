"""
Transaction state machine — applies lifecycle transitions to stored rows.

Repeating the current status is a no-op, so duplicate callbacks and
webhooks are harmless; anything not allowed by the lifecycle is a regression.
"""
from datetime import datetime

from coursepay.errors import InvalidTransitionError
from coursepay.lifecycle import (  # noqa: F401
    PENDING, PROCESSING, SUCCESS, FAILED, REFUNDED,
    STATUSES, OPEN_STATUSES, TERMINAL_STATUSES, can_transition,
)
from coursepay.models.transaction import Transaction


class TransactionStateMachine:

    @staticmethod
    def transition(txn: Transaction, target: str) -> bool:
        """Move ``txn`` to ``target``. Returns True when the status changed."""
        if target not in STATUSES:
            raise InvalidTransitionError(f"Unknown transaction status '{target}'")

        current = txn.status or PENDING
        if current == target:
            return False
        if not can_transition(current, target):
            raise InvalidTransitionError(
                f"Transaction {txn.transaction_id} cannot move from '{current}' to '{target}'"
            )

        txn.status = target
        if target in (SUCCESS, FAILED) and txn.completed_at is None:
            txn.completed_at = datetime.utcnow()
        if target == REFUNDED:
            txn.refunded_at = datetime.utcnow()
        return True

    @staticmethod
    def is_terminal(txn: Transaction) -> bool:
        return txn.status in TERMINAL_STATUSES
