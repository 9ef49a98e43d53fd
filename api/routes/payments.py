"""
Payments API routes.

Thin adapters over the webhook and verification application services: read
the raw request, hand it over, serialize the result. Errors are raised as
BusinessException subclasses and rendered by the global handlers, except on
the verify route, whose clients expect a {success, data, error} body.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_verification_service, get_webhook_service
from application.dtos.payments import VerifyPaymentRequest, VerifyPaymentResponse, WebhookAck
from application.services.verification_service import VerificationService
from application.services.webhook_service import WebhookService
from core.exceptions import business_code_to_http_status, retry_headers
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import BusinessException


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _sender_ip(request: Request) -> str | None:
    if payment_settings.webhook.trust_forwarded_for:
        return getattr(request.state, "client_ip", None)
    return request.client.host if request.client else None


@router.post(
    "/webhooks/paystack",
    summary="Paystack webhook",
    response_model=WebhookAck,
    response_model_exclude_none=True,
)
async def paystack_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
) -> WebhookAck:
    # The signature covers the exact bytes sent; never re-serialize before verifying
    raw_body = await request.body()
    signature = request.headers.get(payment_settings.webhook.signature_header)
    return await service.handle(raw_body, signature, client_ip=_sender_ip(request))


@router.post(
    "/verify",
    summary="Verify a payment reference",
    response_model=VerifyPaymentResponse,
    response_model_exclude_none=True,
)
async def verify_payment(
    payload: VerifyPaymentRequest,
    request: Request,
    service: VerificationService = Depends(get_verification_service),
):
    try:
        return await service.verify(payload)
    except BusinessException as exc:
        # Clients of this endpoint read {success, error}; keep the mapped HTTP status
        status_code = business_code_to_http_status(exc.code)
        log = logger.warning if status_code < 500 else logger.error
        log(
            "payment_verification_failed",
            request_id=getattr(request.state, "request_id", None),
            error_type=exc.error_type,
            code=int(exc.code),
            status_code=status_code,
            reason=getattr(exc, "reason", None),
        )
        body = VerifyPaymentResponse(success=False, error=exc.error_type)
        return JSONResponse(
            status_code=status_code,
            content=body.model_dump(mode="json", exclude_none=True),
            headers=retry_headers(exc),
        )
