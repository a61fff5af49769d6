"""Business service for tenant records created and updated by billing events."""
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.metrics import business_status_changes_total, businesses_created_total
from detailing_billing.models.base import utcnow
from detailing_billing.models.business import Business, SubscriptionStatus
from detailing_billing.schemas.checkout_metadata import PrimaryCheckoutMetadata
from detailing_billing.schemas.stripe_event import StripeCheckoutSession, StripeSubscription
from detailing_billing.utils.condition_defaults import get_initial_condition_config

logger = structlog.get_logger(__name__)


class BusinessService:
    """Service layer for business (tenant) operations."""

    def __init__(self, db: AsyncSession):
        """Initialize business service with database session."""
        self.db = db

    async def get_business(self, business_id: UUID) -> Business | None:
        result = await self.db.execute(select(Business).where(Business.id == business_id))
        return result.scalar_one_or_none()

    async def get_by_owner(self, owner_id: str) -> Business | None:
        """Get the business owned by an auth user."""
        result = await self.db.execute(select(Business).where(Business.owner_id == owner_id))
        return result.scalar_one_or_none()

    async def get_by_subscription_id(self, stripe_subscription_id: str) -> Business | None:
        """Get the business whose primary subscription is ``stripe_subscription_id``."""
        result = await self.db.execute(
            select(Business).where(Business.stripe_subscription_id == stripe_subscription_id)
        )
        return result.scalar_one_or_none()

    async def upsert_from_checkout(
        self,
        metadata: PrimaryCheckoutMetadata,
        session: StripeCheckoutSession,
        subscription: StripeSubscription,
    ) -> tuple[Business, bool]:
        """
        Create or update the owner's business after a plan checkout.

        A new business gets the billing fields, every signup field and the
        regional condition defaults. An existing business only has its billing
        fields replaced; its profile is left alone.

        Args:
            metadata: Decoded checkout metadata
            session: Completed checkout session
            subscription: Subscription retrieved from Stripe

        Returns:
            Tuple of (business, created)
        """
        business = await self.get_by_owner(metadata.user_id)
        created = business is None
        signup = metadata.signup_data

        if business is None:
            business = Business(
                owner_id=metadata.user_id,
                name=metadata.resolved_business_name,
                email=session.email or signup.email,
                phone=signup.phone,
                address=signup.address,
                city=signup.city,
                state=signup.state,
                zip=signup.zip,
                subdomain=signup.subdomain,
                description=signup.description,
                team_size=metadata.team_size,
                condition_config=get_initial_condition_config(signup.state),
            )
            self.db.add(business)

        # Plan comes from checkout metadata only, never from the Stripe price
        business.subscription_plan = metadata.plan_id
        business.subscription_status = SubscriptionStatus.ACTIVE
        business.subscription_billing_period = metadata.billing_period
        business.stripe_subscription_id = subscription.id
        business.stripe_customer_id = subscription.customer or session.customer
        business.subscription_started_at = utcnow()
        business.subscription_ends_at = subscription.period_end

        await self.db.flush()

        if created:
            businesses_created_total.labels(plan=metadata.plan_id.value).inc()
            logger.info(
                "business_created",
                business_id=str(business.id),
                owner_id=metadata.user_id,
                plan=metadata.plan_id.value,
                billing_period=metadata.billing_period.value,
                state=signup.state,
            )
        else:
            logger.info(
                "business_subscription_updated",
                business_id=str(business.id),
                owner_id=metadata.user_id,
                plan=metadata.plan_id.value,
                stripe_subscription_id=subscription.id,
            )

        return business, created

    async def update_subscription_status(
        self,
        business: Business,
        status: SubscriptionStatus,
        period_end: datetime | None = None,
    ) -> Business:
        """
        Mirror the primary subscription's status and renewal date.

        The plan is not touched; it only changes through checkout.
        """
        previous_status = business.subscription_status
        business.subscription_status = status
        if period_end is not None:
            business.subscription_ends_at = period_end
        await self.db.flush()

        if previous_status != status:
            business_status_changes_total.labels(status=status.value).inc()
            logger.info(
                "business_subscription_status_changed",
                business_id=str(business.id),
                from_status=previous_status.value if previous_status else None,
                to_status=status.value,
            )
        return business
