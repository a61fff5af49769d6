"""Stripe webhook endpoint for billing reconciliation."""
import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.adapters.stripe_adapter import PaymentGateway
from detailing_billing.api.deps import get_db, get_gateway
from detailing_billing.errors import ConfigurationError, InvalidEventPayload, ReconciliationError, VerificationError
from detailing_billing.metrics import stripe_webhook_events_total
from detailing_billing.schemas.error import WebhookAck, WebhookErrorResponse
from detailing_billing.services.webhook_processor import StripeWebhookProcessor

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/webhooks/stripe", tags=["Webhooks"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=WebhookErrorResponse(error=message).model_dump())


@router.post(
    "",
    response_model=WebhookAck,
    responses={400: {"model": WebhookErrorResponse}, 500: {"model": WebhookErrorResponse}},
)
async def handle_stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    """
    Handle incoming Stripe webhook events.

    Verifies the signature over the raw body, then reconciles the event in a
    single transaction:

    - 400: missing/invalid signature or malformed metadata (Stripe does not retry)
    - 500: reconciliation failed and was rolled back (Stripe retries)
    - 200: event reconciled, already processed, or not handled
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event = await gateway.construct_webhook_event(body, signature)
    except VerificationError as e:
        logger.warning("stripe_webhook_verification_failed", error=str(e))
        stripe_webhook_events_total.labels(event_type="unknown", outcome="invalid").inc()
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except InvalidEventPayload as e:
        logger.warning("stripe_webhook_invalid_event", error=str(e))
        stripe_webhook_events_total.labels(event_type="unknown", outcome="invalid").inc()
        return _error(status.HTTP_400_BAD_REQUEST, str(e))

    structlog.contextvars.bind_contextvars(stripe_event_id=event.id, stripe_event_type=event.type)
    logger.info("stripe_webhook_received", event_type=event.type, event_id=event.id, livemode=event.livemode)

    try:
        await StripeWebhookProcessor(db, gateway).process(event)
        await db.commit()
    except InvalidEventPayload as e:
        await db.rollback()
        logger.warning("stripe_webhook_invalid_payload", error=str(e))
        stripe_webhook_events_total.labels(event_type=event.type, outcome="invalid").inc()
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except ConfigurationError as e:
        await db.rollback()
        logger.error("stripe_webhook_configuration_error", error=str(e))
        stripe_webhook_events_total.labels(event_type=event.type, outcome="failed").inc()
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))
    except ReconciliationError as e:
        await db.rollback()
        logger.error("stripe_webhook_reconciliation_failed", error=str(e))
        stripe_webhook_events_total.labels(event_type=event.type, outcome="failed").inc()
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))
    except Exception as e:
        await db.rollback()
        logger.exception("stripe_webhook_processing_failed", error=str(e))
        stripe_webhook_events_total.labels(event_type=event.type, outcome="failed").inc()
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e) or type(e).__name__)

    return WebhookAck()
