"""Service for subscription add-on records and the business feature projection."""
from datetime import timedelta
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.adapters.stripe_adapter import PaymentGateway
from detailing_billing.config import settings
from detailing_billing.metrics import addon_status_transitions_total
from detailing_billing.models.base import as_utc, utcnow
from detailing_billing.models.subscription_addon import (
    AddonKey,
    AddonStatus,
    BusinessFeature,
    BusinessSubscriptionAddon,
)
from detailing_billing.schemas.subscription_addon import TrialEligibility

logger = structlog.get_logger(__name__)

ALREADY_ACTIVE_REASON = "You already have an active subscription for this feature."
TRIAL_USED_REASON = "You have already used your free trial for this feature."


class SubscriptionAddonService:
    """Service layer for add-on lifecycle operations."""

    def __init__(self, db: AsyncSession, gateway: PaymentGateway | None = None):
        """Initialize add-on service with database session and optional Stripe gateway."""
        self.db = db
        self.gateway = gateway

    async def get_business_subscription_addons(
        self,
        business_id: UUID,
        statuses: tuple[AddonStatus, ...] | None = None,
    ) -> list[BusinessSubscriptionAddon]:
        """
        Get a business's add-on records.

        Args:
            business_id: Business UUID
            statuses: Only return records in these statuses (all when None)

        Returns:
            Add-on records ordered by creation time
        """
        query = select(BusinessSubscriptionAddon).where(BusinessSubscriptionAddon.business_id == business_id)
        if statuses:
            query = query.where(BusinessSubscriptionAddon.status.in_(statuses))
        result = await self.db.execute(query.order_by(BusinessSubscriptionAddon.created_at))
        return list(result.scalars().all())

    async def get_business_subscription_addon(
        self, business_id: UUID, addon_key: AddonKey
    ) -> BusinessSubscriptionAddon | None:
        """Get the record for one add-on of a business, if any."""
        result = await self.db.execute(
            select(BusinessSubscriptionAddon).where(
                BusinessSubscriptionAddon.business_id == business_id,
                BusinessSubscriptionAddon.addon_key == addon_key,
            )
        )
        return result.scalar_one_or_none()

    async def create_subscription_addon(
        self,
        business_id: UUID,
        addon_key: AddonKey,
        stripe_subscription_item_id: str | None,
        stripe_subscription_id: str | None = None,
    ) -> BusinessSubscriptionAddon:
        """
        Record a purchased add-on as active.

        Upserts by ``(business_id, addon_key)``: a redelivered checkout or a
        repurchase after cancellation reuses the existing row and clears
        ``canceled_at``. The feature projection is updated as well.

        Args:
            business_id: Business UUID
            addon_key: Add-on being purchased
            stripe_subscription_item_id: Subscription item binding the add-on
            stripe_subscription_id: Subscription the item belongs to

        Returns:
            Active add-on record
        """
        addon = await self.get_business_subscription_addon(business_id, addon_key)
        now = utcnow()

        if addon is None:
            addon = BusinessSubscriptionAddon(
                business_id=business_id,
                addon_key=addon_key,
                stripe_subscription_id=stripe_subscription_id,
                stripe_subscription_item_id=stripe_subscription_item_id,
                status=AddonStatus.ACTIVE,
                started_at=now,
            )
            self.db.add(addon)
            logger.info(
                "subscription_addon_created",
                business_id=str(business_id),
                addon_key=addon_key.value,
                stripe_subscription_item_id=stripe_subscription_item_id,
            )
        else:
            previous_status = addon.status
            if previous_status == AddonStatus.CANCELED:
                addon.started_at = now
            addon.stripe_subscription_id = stripe_subscription_id
            addon.stripe_subscription_item_id = stripe_subscription_item_id
            addon.status = AddonStatus.ACTIVE
            addon.canceled_at = None
            logger.info(
                "subscription_addon_reactivated",
                business_id=str(business_id),
                addon_key=addon_key.value,
                previous_status=previous_status.value,
                stripe_subscription_item_id=stripe_subscription_item_id,
            )

        await self.db.flush()
        await self.add_feature(business_id, addon_key.value)
        addon_status_transitions_total.labels(addon_key=addon_key.value, status=AddonStatus.ACTIVE.value).inc()
        return addon

    async def update_subscription_addon_status(
        self,
        addon: BusinessSubscriptionAddon,
        status: AddonStatus,
    ) -> bool:
        """
        Move an add-on to ``status``.

        ``canceled_at`` is set only when the new status is canceled, and the
        feature projection follows the status: canceled removes the feature,
        active restores it.

        Returns:
            True when the status changed
        """
        if addon.status == status:
            return False

        previous_status = addon.status
        addon.status = status
        if status == AddonStatus.CANCELED:
            addon.canceled_at = utcnow()
        await self.db.flush()

        if status == AddonStatus.CANCELED:
            await self.remove_feature(addon.business_id, addon.addon_key.value)
        elif status == AddonStatus.ACTIVE:
            await self.add_feature(addon.business_id, addon.addon_key.value)

        addon_status_transitions_total.labels(addon_key=addon.addon_key.value, status=status.value).inc()
        logger.info(
            "subscription_addon_status_changed",
            business_id=str(addon.business_id),
            addon_key=addon.addon_key.value,
            from_status=previous_status.value,
            to_status=status.value,
        )
        return True

    async def cancel_subscription_addon(self, business_id: UUID, addon_key: AddonKey) -> BusinessSubscriptionAddon:
        """
        Cancel a paid add-on by removing its item from the Stripe subscription.

        Args:
            business_id: Business UUID
            addon_key: Add-on to cancel

        Returns:
            Canceled add-on record

        Raises:
            ValueError: If the business has no active add-on bound to a subscription item
        """
        addon = await self.get_business_subscription_addon(business_id, addon_key)
        if (
            addon is None
            or addon.status == AddonStatus.CANCELED
            or not addon.stripe_subscription_item_id
        ):
            raise ValueError(f"Add-on {addon_key.value} not found or not active")

        if self.gateway is None:
            raise RuntimeError("SubscriptionAddonService needs a payment gateway to cancel add-ons")

        await self.gateway.delete_subscription_item(addon.stripe_subscription_item_id)
        await self.update_subscription_addon_status(addon, AddonStatus.CANCELED)
        return addon

    async def add_feature(self, business_id: UUID, feature_key: str) -> None:
        """
        Enable ``feature_key`` for a business (no-op when already enabled).

        The projection is best effort: a failed write is rolled back to its
        SAVEPOINT and logged, and the add-on record stays authoritative.
        """
        if await self.has_feature(business_id, feature_key):
            return
        try:
            async with self.db.begin_nested():
                self.db.add(BusinessFeature(business_id=business_id, feature_key=feature_key))
        except SQLAlchemyError as e:
            logger.warning(
                "business_feature_update_failed",
                business_id=str(business_id),
                feature_key=feature_key,
                operation="add",
                error=str(e),
            )

    async def remove_feature(self, business_id: UUID, feature_key: str) -> None:
        """Disable ``feature_key`` for a business (best effort, like ``add_feature``)."""
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    delete(BusinessFeature).where(
                        BusinessFeature.business_id == business_id,
                        BusinessFeature.feature_key == feature_key,
                    )
                )
        except SQLAlchemyError as e:
            logger.warning(
                "business_feature_update_failed",
                business_id=str(business_id),
                feature_key=feature_key,
                operation="remove",
                error=str(e),
            )

    async def has_feature(self, business_id: UUID, feature_key: str) -> bool:
        result = await self.db.execute(
            select(BusinessFeature.id).where(
                BusinessFeature.business_id == business_id,
                BusinessFeature.feature_key == feature_key,
            )
        )
        return result.first() is not None

    async def get_business_features(self, business_id: UUID) -> list[str]:
        result = await self.db.execute(
            select(BusinessFeature.feature_key)
            .where(BusinessFeature.business_id == business_id)
            .order_by(BusinessFeature.feature_key)
        )
        return list(result.scalars().all())

    async def has_subscription_addon(self, business_id: UUID, addon_key: AddonKey) -> bool:
        """
        Check whether a business can use an add-on.

        The feature projection is checked first, then an active or trial
        record. A trial past its end date, or with no end date, is canceled on
        read.
        """
        if await self.has_feature(business_id, addon_key.value):
            return True

        addon = await self.get_business_subscription_addon(business_id, addon_key)
        if addon is None or addon.status not in (AddonStatus.ACTIVE, AddonStatus.TRIAL):
            return False

        if addon.status == AddonStatus.TRIAL:
            trial_ends_at = as_utc(addon.trial_ends_at)
            if trial_ends_at is None or trial_ends_at < utcnow():
                logger.info(
                    "subscription_addon_trial_expired",
                    business_id=str(business_id),
                    addon_key=addon_key.value,
                    trial_ends_at=trial_ends_at.isoformat() if trial_ends_at else None,
                )
                await self.update_subscription_addon_status(addon, AddonStatus.CANCELED)
                return False

        return True

    async def check_trial_eligibility(self, business_id: UUID, addon_key: AddonKey) -> TrialEligibility:
        """
        A business gets one trial per add-on and none while it holds a paid one.

        Any row bound to a Stripe item, or in a paid status, blocks the trial
        so starting one never discards the binding.
        """
        addon = await self.get_business_subscription_addon(business_id, addon_key)
        if addon is None:
            return TrialEligibility(eligible=True)
        if (
            addon.status in (AddonStatus.ACTIVE, AddonStatus.PAST_DUE)
            or addon.stripe_subscription_item_id is not None
        ):
            return TrialEligibility(eligible=False, reason=ALREADY_ACTIVE_REASON)
        if addon.trial_ends_at is not None:
            return TrialEligibility(eligible=False, reason=TRIAL_USED_REASON)
        return TrialEligibility(eligible=True)

    async def start_mileage_trial(
        self, business_id: UUID, trial_days: int | None = None
    ) -> BusinessSubscriptionAddon:
        """
        Start the free mileage tracker trial.

        Raises:
            ValueError: If the business is not eligible
        """
        eligibility = await self.check_trial_eligibility(business_id, AddonKey.MILEAGE_TRACKER)
        if not eligibility.eligible:
            raise ValueError(eligibility.reason)

        now = utcnow()
        trial_ends_at = now + timedelta(days=trial_days or settings.mileage_trial_days)
        addon = await self.get_business_subscription_addon(business_id, AddonKey.MILEAGE_TRACKER)
        if addon is None:
            addon = BusinessSubscriptionAddon(
                business_id=business_id,
                addon_key=AddonKey.MILEAGE_TRACKER,
            )
            self.db.add(addon)
        addon.stripe_subscription_id = None
        addon.stripe_subscription_item_id = None
        addon.status = AddonStatus.TRIAL
        addon.started_at = now
        addon.canceled_at = None
        addon.trial_ends_at = trial_ends_at
        await self.db.flush()

        addon_status_transitions_total.labels(
            addon_key=AddonKey.MILEAGE_TRACKER.value, status=AddonStatus.TRIAL.value
        ).inc()
        logger.info(
            "mileage_trial_started",
            business_id=str(business_id),
            trial_ends_at=trial_ends_at.isoformat(),
        )
        return addon
