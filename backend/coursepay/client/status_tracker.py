"""
Transaction status tracker — what the payment status page shows.
"""
from typing import List

from coursepay.client.api import PaymentApiClient
from coursepay.errors import ValidationError
from coursepay.lifecycle import SUCCESS, build_timeline


class TransactionStatusTracker:

    def __init__(self, api: PaymentApiClient):
        self.api = api

    def get_status(self, transaction_id: str) -> dict:
        return self.api.get_status(transaction_id)

    def check_status(self, transaction_id: str) -> dict:
        """Manual "Check Status": always refetches."""
        return self.get_status(transaction_id)

    @staticmethod
    def timeline(transaction: dict) -> List[dict]:
        if transaction.get("timeline"):
            return transaction["timeline"]
        return build_timeline(
            transaction.get("status", "pending"),
            initiated_at=transaction.get("initiatedAt"),
            processed_at=transaction.get("callbackReceivedAt"),
            finished_at=transaction.get("refundedAt") or transaction.get("completedAt"),
        )

    def download_receipt(self, transaction_id: str) -> bytes:
        """Fetch the current status first; a receipt exists only for a successful payment."""
        if self.get_status(transaction_id).get("status") != SUCCESS:
            raise ValidationError("Receipt is available only after a successful payment")
        return self.api.download_receipt(transaction_id)
