"""
Mock Gateway Routes — in-app payment page for development.

Every route answers 404 unless the mock gateway is configured outside
production.
"""
import asyncio
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from coursepay.config import get_settings
from coursepay.errors import NotFoundError, ValidationError
from coursepay.services.gateways import PaymentGateway, get_gateway
from coursepay.services.gateways.mock_gateway import (
    MOCK_ERROR_CODE, MOCK_ERROR_MESSAGE, MockGateway, mock_gateway_transaction_id,
)
from coursepay.utils.logger import get_logger

router = APIRouter(prefix="/mock-gateway", tags=["Mock Gateway"])
logger = get_logger(__name__)
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


def mock_only(gateway: PaymentGateway = Depends(get_gateway)) -> MockGateway:
    settings = get_settings()
    if not settings.mock_gateway_enabled or not isinstance(gateway, MockGateway):
        raise NotFoundError("Not found")
    return gateway


@router.get("")
def mock_payment_page(
    request: Request,
    transactionId: Optional[str] = None,
    amount: Optional[str] = None,
    customerName: Optional[str] = None,
    customerEmail: Optional[str] = None,
    customerPhone: Optional[str] = None,
    callbackUrl: Optional[str] = None,
    merchantId: Optional[str] = None,
    gateway: MockGateway = Depends(mock_only),
):
    settings = get_settings()
    context = {
        "currency": settings.CURRENCY,
        "delay": settings.MOCK_GATEWAY_DELAY_SECONDS,
        "transaction_id": transactionId,
        "amount": amount,
        "customer_name": customerName,
        "customer_email": customerEmail,
        "customer_phone": customerPhone,
        "merchant_id": merchantId or gateway.merchant_id,
        "error": None,
    }
    if not transactionId or not amount or not callbackUrl:
        context["error"] = "Invalid payment request. Missing required parameters."
        return templates.TemplateResponse(request, "mock_gateway.html", context, status_code=400)

    base = {"transactionId": transactionId, "amount": amount, "callbackUrl": callbackUrl}
    context["success_url"] = f"{request.url.path}/simulate?{urlencode({**base, 'outcome': 'success'})}"
    context["failure_url"] = f"{request.url.path}/simulate?{urlencode({**base, 'outcome': 'failed'})}"
    return templates.TemplateResponse(request, "mock_gateway.html", context)


@router.get("/simulate")
async def simulate_outcome(
    transactionId: str,
    amount: str,
    callbackUrl: str,
    outcome: str = "success",
    gateway: MockGateway = Depends(mock_only),
):
    """Wait, fabricate a gateway id and signature, then bounce to the callback."""
    if outcome not in ("success", "failed"):
        raise ValidationError("outcome must be 'success' or 'failed'")
    # Only our own callback route may receive a signed result.
    if callbackUrl.split("?", 1)[0] != gateway.callback_url:
        raise ValidationError("Unknown callback URL")

    delay = get_settings().MOCK_GATEWAY_DELAY_SECONDS
    if delay > 0:
        await asyncio.sleep(delay)

    gateway_id = mock_gateway_transaction_id()
    params = {
        "transactionId": transactionId,
        "status": outcome,
        "gatewayTransactionId": gateway_id,
        "signature": gateway.sign(transactionId, outcome, gateway_id),
        "amount": amount,
        "paymentMethod": "card",
        "cardType": "visa",
        "cardLast4": "4242",
    }
    if outcome == "failed":
        params["errorCode"] = MOCK_ERROR_CODE
        params["errorMessage"] = MOCK_ERROR_MESSAGE

    logger.info("mock gateway: %s -> %s", transactionId, outcome)
    return RedirectResponse(url=f"{gateway.callback_url}?{urlencode(params)}", status_code=303)
