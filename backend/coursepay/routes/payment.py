"""
Payment Routes — Course checkout.
Handles: initiation (elements / checkout), provider callback, webhooks,
status polling, history, receipts and retries.
"""
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.orm import Session

from coursepay.config import get_settings
from coursepay.database import get_db
from coursepay.models.user import User
from coursepay.schemas.schemas import PaymentInitRequest, PaymentInitResponse, AmountBreakdown
from coursepay.services.gateways import PaymentGateway, get_gateway
from coursepay.services.payment_service import InitiationResult, PaymentService
from coursepay.services.receipt_service import ReceiptService
from coursepay.services.status_service import StatusService
from coursepay.utils.logger import get_logger
from coursepay.utils.rate_limiter import rate_limit
from coursepay.utils.security import get_current_user

router = APIRouter(prefix="/api/payment", tags=["Payment"])
logger = get_logger(__name__)
settings = get_settings()


def client_ip(request: Request):
    return request.client.host if request.client else None


def _payments(db: Session = Depends(get_db), gateway: PaymentGateway = Depends(get_gateway)) -> PaymentService:
    return PaymentService(db, gateway)


def _init_response(result: InitiationResult) -> PaymentInitResponse:
    txn = result.transaction
    return PaymentInitResponse(
        transaction_id=txn.transaction_id,
        mode=result.mode,
        client_secret=result.client_secret,
        publishable_key=result.publishable_key,
        payment_url=result.payment_url,
        expires_at=txn.session_expires_at,
        amount=AmountBreakdown(**{k: float(v) for k, v in result.breakdown.as_dict().items()}),
        reused=result.reused,
    )


@router.post("/initiate", response_model=PaymentInitResponse, response_model_exclude_none=True)
def initiate_payment(
    payload: PaymentInitRequest,
    request: Request,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(_payments),
    _throttle: bool = Depends(rate_limit(requests=settings.RATE_LIMIT_INITIATE, window=60, scope="initiate")),
):
    """Price the course server-side and open a provider payment."""
    result = payments.initiate(
        user,
        course_id=payload.course_id,
        discount_code=payload.discount_code,
        mode=payload.mode,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _init_response(result)


@router.get("/callback")
def payment_callback(request: Request, payments: PaymentService = Depends(_payments)):
    """Browser redirect target after the provider (or simulator) finishes."""
    params = dict(request.query_params)
    logger.info("callback received: txn=%s status=%s", params.get("transactionId"), params.get("status"))

    txn = payments.handle_callback(params)

    query = urlencode({"transactionId": txn.transaction_id, "status": txn.status})
    return RedirectResponse(
        url=f"{payments.settings.CLIENT_URL.rstrip('/')}/dashboard/payment-callback?{query}",
        status_code=303,
    )


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="stripe-signature"),
    payments: PaymentService = Depends(_payments),
):
    payload = await request.body()
    return payments.handle_webhook(payload, stripe_signature)


@router.get("/status/{transaction_id}")
def get_payment_status(
    transaction_id: str,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(_payments),
):
    """Current state and timeline; safe to poll, never cached."""
    return {"success": True, "transaction": StatusService(payments).get_status(user, transaction_id)}


@router.get("/history")
def get_payment_history(
    page: int = 1,
    limit: int = 10,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(_payments),
):
    return {"success": True, **StatusService(payments).history(user, page=page, limit=limit)}


@router.get("/receipt/{transaction_id}")
def download_receipt(
    transaction_id: str,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(_payments),
):
    txn = payments.get_owned_transaction(user, transaction_id)
    pdf = ReceiptService.render_pdf(txn)
    filename = f"receipt-{txn.receipt_number or txn.transaction_id}.pdf"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/retry/{transaction_id}", response_model=PaymentInitResponse, response_model_exclude_none=True)
def retry_payment(
    transaction_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(_payments),
    _throttle: bool = Depends(rate_limit(requests=settings.RATE_LIMIT_INITIATE, window=60, scope="retry")),
):
    result = payments.retry(
        user, transaction_id,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _init_response(result)
