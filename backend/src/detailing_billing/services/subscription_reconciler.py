"""Reconciliation of businesses with their primary Stripe subscription."""
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.adapters.stripe_adapter import PaymentGateway
from detailing_billing.errors import InvalidEventPayload
from detailing_billing.models.business import Business, SubscriptionStatus
from detailing_billing.schemas.checkout_metadata import PrimaryCheckoutMetadata, decode_metadata
from detailing_billing.schemas.stripe_event import StripeCheckoutSession, StripeSubscription
from detailing_billing.services.addon_reconciler import AddonReconciler
from detailing_billing.services.business_service import BusinessService
from detailing_billing.services.signup_lead_service import SignupLeadService

logger = structlog.get_logger(__name__)


class SubscriptionReconciler:
    """Creates businesses from plan checkouts and mirrors their subscription afterwards."""

    def __init__(self, db: AsyncSession, gateway: PaymentGateway):
        """Initialize subscription reconciler with database session and Stripe gateway."""
        self.db = db
        self.gateway = gateway
        self.businesses = BusinessService(db)
        self.leads = SignupLeadService(db)
        self.addon_reconciler = AddonReconciler(db, gateway)

    async def handle_checkout_completed(self, session: StripeCheckoutSession) -> Business:
        """
        Create or update the owner's business from a completed plan checkout.

        Args:
            session: Checkout session with plan metadata

        Returns:
            The created or updated business

        Raises:
            InvalidEventPayload: If the metadata is invalid or the session has no subscription
            stripe.StripeError: If the subscription cannot be retrieved
        """
        metadata = decode_metadata(
            PrimaryCheckoutMetadata, session.metadata, source=f"checkout session {session.id}"
        )
        if not session.subscription:
            raise InvalidEventPayload(f"Checkout session {session.id} has no subscription")

        if metadata.signup_lead_id:
            await self.leads.mark_converted(metadata.signup_lead_id)

        subscription = await self.gateway.retrieve_subscription(session.subscription)
        business, _ = await self.businesses.upsert_from_checkout(metadata, session, subscription)
        return business

    async def _business_for(self, subscription: StripeSubscription) -> Business | None:
        business = await self.businesses.get_by_subscription_id(subscription.id)
        if business is None:
            # Subscriptions of owners who never finished checkout have no business
            logger.info("stripe_subscription_unknown", stripe_subscription_id=subscription.id)
        return business

    async def handle_subscription_updated(self, subscription: StripeSubscription) -> None:
        """
        Mirror status and renewal date, then reconcile the bound add-ons.

        A business already canceled for this subscription stays canceled:
        Stripe never reactivates a deleted subscription, so a non-canceled
        update arriving afterwards was delivered out of order.
        """
        business = await self._business_for(subscription)
        if business is None:
            return

        if (
            business.subscription_status == SubscriptionStatus.CANCELED
            and subscription.status != SubscriptionStatus.CANCELED
        ):
            logger.warning(
                "stale_subscription_update_ignored",
                business_id=str(business.id),
                stripe_subscription_id=subscription.id,
                event_status=subscription.status.value,
            )
            return

        await self.businesses.update_subscription_status(business, subscription.status, subscription.period_end)
        await self.addon_reconciler.sync_subscription_items(business, subscription)

    async def handle_subscription_deleted(self, subscription: StripeSubscription) -> None:
        """Cancel the business and every add-on attached to it."""
        business = await self._business_for(subscription)
        if business is None:
            return

        await self.businesses.update_subscription_status(business, SubscriptionStatus.CANCELED)
        canceled = await self.addon_reconciler.cancel_all(business.id)
        logger.info(
            "business_subscription_canceled",
            business_id=str(business.id),
            stripe_subscription_id=subscription.id,
            addons_canceled=canceled,
        )
