from coursepay.client.api import PaymentApiClient
from coursepay.client.payment_form import PaymentFormAdapter, build_return_url
from coursepay.client.session import (
    SessionProvider, InMemorySessionProvider, JsonFileSessionProvider, home_path_for_role,
)
from coursepay.client.status_tracker import TransactionStatusTracker

__all__ = [
    "PaymentApiClient", "PaymentFormAdapter", "build_return_url", "SessionProvider",
    "InMemorySessionProvider", "JsonFileSessionProvider", "home_path_for_role", "TransactionStatusTracker",
]
