"""Reconciliation of add-on records with Stripe subscriptions and invoices."""
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.adapters.stripe_adapter import PaymentGateway
from detailing_billing.errors import RelatedRecordNotFound
from detailing_billing.models.business import Business, SubscriptionStatus
from detailing_billing.models.subscription_addon import AddonStatus, BusinessSubscriptionAddon
from detailing_billing.schemas.checkout_metadata import AddonMetadata, decode_metadata
from detailing_billing.schemas.stripe_event import StripeCheckoutSession, StripeInvoice, StripeSubscription
from detailing_billing.services.business_service import BusinessService
from detailing_billing.services.subscription_addon_service import SubscriptionAddonService

logger = structlog.get_logger(__name__)

# Stripe subscription status -> add-on status for standalone add-on subscriptions
STANDALONE_STATUS_MAP = {
    SubscriptionStatus.CANCELED: AddonStatus.CANCELED,
    SubscriptionStatus.PAST_DUE: AddonStatus.PAST_DUE,
    SubscriptionStatus.UNPAID: AddonStatus.PAST_DUE,
    SubscriptionStatus.TRIALING: AddonStatus.TRIAL,
}


def standalone_addon_status(status: SubscriptionStatus) -> AddonStatus:
    """Map a standalone add-on subscription's status to the add-on status."""
    return STANDALONE_STATUS_MAP.get(status, AddonStatus.ACTIVE)


class AddonReconciler:
    """
    Keeps ``business_subscription_addons`` consistent with Stripe.

    Handles add-on checkouts, standalone add-on subscriptions, invoice
    outcomes, and the item diff run after a primary subscription changes.
    """

    def __init__(self, db: AsyncSession, gateway: PaymentGateway):
        """Initialize add-on reconciler with database session and Stripe gateway."""
        self.db = db
        self.gateway = gateway
        self.addons = SubscriptionAddonService(db, gateway)
        self.businesses = BusinessService(db)

    async def handle_checkout_completed(self, session: StripeCheckoutSession) -> None:
        """
        Record an add-on purchased through checkout.

        The first item of the new subscription becomes the add-on's binding.

        Raises:
            InvalidEventPayload: If the metadata does not name a business and a known add-on
            RelatedRecordNotFound: If the business does not exist yet
        """
        metadata = decode_metadata(AddonMetadata, session.metadata, source=f"checkout session {session.id}")
        if await self.businesses.get_business(metadata.business_id) is None:
            raise RelatedRecordNotFound(f"Business {metadata.business_id} not found for checkout session {session.id}")

        if not session.subscription:
            logger.warning(
                "addon_checkout_missing_subscription",
                checkout_session_id=session.id,
                business_id=str(metadata.business_id),
            )
            return

        subscription = await self.gateway.retrieve_subscription(session.subscription)
        item_id = subscription.first_item_id
        if item_id is None:
            logger.warning(
                "addon_checkout_subscription_has_no_items",
                checkout_session_id=session.id,
                stripe_subscription_id=subscription.id,
            )
            return

        await self.addons.create_subscription_addon(
            metadata.business_id,
            metadata.addon_key,
            item_id,
            stripe_subscription_id=subscription.id,
        )
        logger.info(
            "addon_checkout_completed",
            business_id=str(metadata.business_id),
            addon_key=metadata.addon_key.value,
            stripe_subscription_id=subscription.id,
            stripe_subscription_item_id=item_id,
        )

    async def _standalone_addon(self, subscription: StripeSubscription) -> BusinessSubscriptionAddon | None:
        metadata = decode_metadata(AddonMetadata, subscription.metadata, source=f"subscription {subscription.id}")
        addon = await self.addons.get_business_subscription_addon(metadata.business_id, metadata.addon_key)
        if addon is None:
            logger.warning(
                "subscription_addon_not_found",
                business_id=str(metadata.business_id),
                addon_key=metadata.addon_key.value,
                stripe_subscription_id=subscription.id,
            )
        return addon

    async def handle_standalone_updated(self, subscription: StripeSubscription) -> None:
        """Mirror a standalone add-on subscription's status onto its add-on."""
        addon = await self._standalone_addon(subscription)
        if addon is None:
            return
        await self.addons.update_subscription_addon_status(addon, standalone_addon_status(subscription.status))

    async def handle_standalone_deleted(self, subscription: StripeSubscription) -> None:
        """Cancel the add-on whose standalone subscription ended."""
        addon = await self._standalone_addon(subscription)
        if addon is None:
            return
        await self.addons.update_subscription_addon_status(addon, AddonStatus.CANCELED)

    async def sync_subscription_items(self, business: Business, subscription: StripeSubscription) -> None:
        """
        Diff the subscription's items against the business's bound add-ons.

        - item no longer on the subscription: canceled
        - parent active: promoted to active
        - parent past_due: demoted to past_due

        Canceled add-ons stay canceled and trials are left to their trial window.
        """
        item_ids = set(subscription.item_ids)
        addons = await self.addons.get_business_subscription_addons(
            business.id, statuses=(AddonStatus.ACTIVE, AddonStatus.PAST_DUE)
        )

        for addon in addons:
            if addon.stripe_subscription_id not in (None, subscription.id):
                continue

            if addon.stripe_subscription_item_id and addon.stripe_subscription_item_id not in item_ids:
                logger.info(
                    "subscription_addon_item_removed",
                    business_id=str(business.id),
                    addon_key=addon.addon_key.value,
                    stripe_subscription_item_id=addon.stripe_subscription_item_id,
                )
                await self.addons.update_subscription_addon_status(addon, AddonStatus.CANCELED)
            elif subscription.status == SubscriptionStatus.ACTIVE:
                await self.addons.update_subscription_addon_status(addon, AddonStatus.ACTIVE)
            elif subscription.status == SubscriptionStatus.PAST_DUE:
                await self.addons.update_subscription_addon_status(addon, AddonStatus.PAST_DUE)

    async def cancel_all(self, business_id: UUID) -> int:
        """
        Cancel every remaining add-on of a business.

        Returns:
            Number of add-ons canceled
        """
        addons = await self.addons.get_business_subscription_addons(
            business_id, statuses=(AddonStatus.ACTIVE, AddonStatus.PAST_DUE, AddonStatus.TRIAL)
        )
        for addon in addons:
            await self.addons.update_subscription_addon_status(addon, AddonStatus.CANCELED)
        return len(addons)

    async def _addons_for_invoice(
        self, invoice: StripeInvoice, status: AddonStatus
    ) -> list[BusinessSubscriptionAddon]:
        subscription_id = invoice.subscription_id
        if not subscription_id:
            logger.info("invoice_without_subscription", invoice_id=invoice.id)
            return []

        business = await self.businesses.get_by_subscription_id(subscription_id)
        if business is not None:
            addons = await self.addons.get_business_subscription_addons(business.id, statuses=(status,))
            return [addon for addon in addons if addon.stripe_subscription_id in (None, subscription_id)]

        # Invoice for a standalone add-on subscription
        result = await self.db.execute(
            select(BusinessSubscriptionAddon).where(
                BusinessSubscriptionAddon.stripe_subscription_id == subscription_id,
                BusinessSubscriptionAddon.status == status,
            )
        )
        addons = list(result.scalars().all())
        if not addons:
            logger.info(
                "invoice_subscription_unknown",
                invoice_id=invoice.id,
                stripe_subscription_id=subscription_id,
            )
        return addons

    async def handle_invoice_paid(self, invoice: StripeInvoice) -> None:
        """Promote past_due add-ons once their subscription's invoice is paid."""
        for addon in await self._addons_for_invoice(invoice, AddonStatus.PAST_DUE):
            await self.addons.update_subscription_addon_status(addon, AddonStatus.ACTIVE)

    async def handle_invoice_failed(self, invoice: StripeInvoice) -> None:
        """Demote active add-ons when their subscription's invoice payment fails."""
        for addon in await self._addons_for_invoice(invoice, AddonStatus.ACTIVE):
            await self.addons.update_subscription_addon_status(addon, AddonStatus.PAST_DUE)
