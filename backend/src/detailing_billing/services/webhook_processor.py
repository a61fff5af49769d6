"""Routing of verified Stripe events to their reconciliation handlers."""
import time
from typing import Awaitable, Callable, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.adapters.stripe_adapter import PaymentGateway
from detailing_billing.errors import InvalidEventPayload
from detailing_billing.metrics import stripe_webhook_events_total, stripe_webhook_processing_seconds
from detailing_billing.models.stripe_event import ProcessedStripeEvent
from detailing_billing.schemas.stripe_event import (
    StripeCheckoutSession,
    StripeEvent,
    StripeInvoice,
    StripeSubscription,
)
from detailing_billing.services.addon_reconciler import AddonReconciler
from detailing_billing.services.subscription_reconciler import SubscriptionReconciler

logger = structlog.get_logger(__name__)

PayloadModel = TypeVar("PayloadModel", bound=BaseModel)

# Outcomes reported to metrics and returned to the route
PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"


def decode_payload(model: type[PayloadModel], event: StripeEvent) -> PayloadModel:
    """
    Decode ``event.data.object`` as ``model``.

    Raises:
        InvalidEventPayload: If the object does not match the expected shape
    """
    try:
        return model.model_validate(event.payload)
    except ValidationError as e:
        raise InvalidEventPayload(f"Malformed {event.type} payload in event {event.id}") from e


class StripeWebhookProcessor:
    """
    Dispatches a verified event to exactly one handler.

    Every handled event is recorded in ``processed_stripe_events`` in the same
    transaction as its writes, after the handler succeeded; a redelivered event
    found in the ledger is acknowledged without running the handler again.
    """

    def __init__(self, db: AsyncSession, gateway: PaymentGateway):
        """Initialize processor with database session and Stripe gateway."""
        self.db = db
        self.subscriptions = SubscriptionReconciler(db, gateway)
        self.addons = AddonReconciler(db, gateway)
        self.handlers: dict[str, Callable[[StripeEvent], Awaitable[str]]] = {
            "checkout.session.completed": self._checkout_completed,
            "customer.subscription.updated": self._subscription_updated,
            "customer.subscription.deleted": self._subscription_deleted,
            "invoice.payment_succeeded": self._invoice_paid,
            "invoice.payment_failed": self._invoice_failed,
        }

    async def process(self, event: StripeEvent) -> str:
        """
        Reconcile one event.

        Args:
            event: Verified Stripe event

        Returns:
            Outcome: ``processed``, ``duplicate`` or ``ignored``

        Raises:
            InvalidEventPayload: If the event's object or metadata is malformed
            Exception: Any handler failure, so the caller can roll back
        """
        handler = self.handlers.get(event.type)
        if handler is None:
            logger.info("stripe_webhook_unhandled_event", event_type=event.type, event_id=event.id)
            stripe_webhook_events_total.labels(event_type=event.type, outcome=IGNORED).inc()
            return IGNORED

        if await self.is_processed(event.id):
            logger.info("stripe_webhook_duplicate_event", event_type=event.type, event_id=event.id)
            stripe_webhook_events_total.labels(event_type=event.type, outcome=DUPLICATE).inc()
            return DUPLICATE

        start_time = time.perf_counter()
        outcome = await handler(event)
        stripe_webhook_processing_seconds.labels(event_type=event.type).observe(time.perf_counter() - start_time)

        self.db.add(ProcessedStripeEvent(stripe_event_id=event.id, event_type=event.type))
        await self.db.flush()

        stripe_webhook_events_total.labels(event_type=event.type, outcome=outcome).inc()
        logger.info("stripe_webhook_processed", event_type=event.type, event_id=event.id, outcome=outcome)
        return outcome

    async def is_processed(self, event_id: str) -> bool:
        result = await self.db.execute(
            select(ProcessedStripeEvent.id).where(ProcessedStripeEvent.stripe_event_id == event_id)
        )
        return result.first() is not None

    async def _checkout_completed(self, event: StripeEvent) -> str:
        session = decode_payload(StripeCheckoutSession, event)
        if session.mode != "subscription":
            logger.info("checkout_session_ignored", checkout_session_id=session.id, mode=session.mode)
            return IGNORED
        if session.is_addon_checkout:
            await self.addons.handle_checkout_completed(session)
            return PROCESSED
        if session.is_primary_checkout:
            await self.subscriptions.handle_checkout_completed(session)
            return PROCESSED
        logger.info("checkout_session_without_billing_metadata", checkout_session_id=session.id)
        return IGNORED

    async def _subscription_updated(self, event: StripeEvent) -> str:
        subscription = decode_payload(StripeSubscription, event)
        if subscription.is_standalone_addon:
            await self.addons.handle_standalone_updated(subscription)
        else:
            await self.subscriptions.handle_subscription_updated(subscription)
        return PROCESSED

    async def _subscription_deleted(self, event: StripeEvent) -> str:
        subscription = decode_payload(StripeSubscription, event)
        if subscription.is_standalone_addon:
            await self.addons.handle_standalone_deleted(subscription)
        else:
            await self.subscriptions.handle_subscription_deleted(subscription)
        return PROCESSED

    async def _invoice_paid(self, event: StripeEvent) -> str:
        await self.addons.handle_invoice_paid(decode_payload(StripeInvoice, event))
        return PROCESSED

    async def _invoice_failed(self, event: StripeEvent) -> str:
        await self.addons.handle_invoice_failed(decode_payload(StripeInvoice, event))
        return PROCESSED
