"""Integration tests for add-on lifecycle operations (service layer)."""
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.models.base import as_utc, utcnow
from detailing_billing.models.subscription_addon import AddonKey, AddonStatus, BusinessSubscriptionAddon
from detailing_billing.services.subscription_addon_service import (
    ALREADY_ACTIVE_REASON,
    TRIAL_USED_REASON,
    SubscriptionAddonService,
)


@pytest.mark.asyncio
async def test_create_addon_enables_feature(db_session: AsyncSession, test_business) -> None:
    """A purchased add-on is active and shows up in the feature projection."""
    service = SubscriptionAddonService(db_session)

    addon = await service.create_subscription_addon(
        test_business.id, AddonKey.AI_PHOTO_ANALYSIS, "si_photo", stripe_subscription_id="sub_photo"
    )
    await db_session.commit()

    assert addon.status == AddonStatus.ACTIVE
    assert addon.stripe_subscription_item_id == "si_photo"
    assert addon.stripe_subscription_id == "sub_photo"
    assert addon.canceled_at is None
    assert await service.get_business_features(test_business.id) == ["ai_photo_analysis"]
    assert await service.has_subscription_addon(test_business.id, AddonKey.AI_PHOTO_ANALYSIS)


@pytest.mark.asyncio
async def test_create_addon_is_an_upsert(db_session: AsyncSession, test_business) -> None:
    """Repurchasing a canceled add-on reuses its row and clears canceled_at."""
    service = SubscriptionAddonService(db_session)

    first = await service.create_subscription_addon(test_business.id, AddonKey.MILEAGE_TRACKER, "si_1")
    await service.update_subscription_addon_status(first, AddonStatus.CANCELED)
    assert first.canceled_at is not None
    assert await service.get_business_features(test_business.id) == []

    second = await service.create_subscription_addon(test_business.id, AddonKey.MILEAGE_TRACKER, "si_2")
    await db_session.commit()

    count = await db_session.scalar(
        select(func.count()).select_from(BusinessSubscriptionAddon).where(
            BusinessSubscriptionAddon.business_id == test_business.id
        )
    )
    assert count == 1
    assert second.id == first.id
    assert second.status == AddonStatus.ACTIVE
    assert second.stripe_subscription_item_id == "si_2"
    assert second.canceled_at is None
    assert await service.get_business_features(test_business.id) == ["mileage_tracker"]


@pytest.mark.asyncio
async def test_status_update_only_stamps_cancellation(db_session: AsyncSession, test_business) -> None:
    service = SubscriptionAddonService(db_session)
    addon = await service.create_subscription_addon(test_business.id, AddonKey.AUTO_LEAD, "si_lead")

    assert await service.update_subscription_addon_status(addon, AddonStatus.PAST_DUE) is True
    assert addon.canceled_at is None

    assert await service.update_subscription_addon_status(addon, AddonStatus.PAST_DUE) is False

    assert await service.update_subscription_addon_status(addon, AddonStatus.CANCELED) is True
    assert addon.canceled_at is not None
    assert not await service.has_subscription_addon(test_business.id, AddonKey.AUTO_LEAD)


@pytest.mark.asyncio
async def test_mileage_trial_lifecycle(db_session: AsyncSession, test_business) -> None:
    """A business gets exactly one 14-day trial."""
    service = SubscriptionAddonService(db_session)

    eligibility = await service.check_trial_eligibility(test_business.id, AddonKey.MILEAGE_TRACKER)
    assert eligibility.eligible is True

    addon = await service.start_mileage_trial(test_business.id)
    await db_session.commit()

    assert addon.status == AddonStatus.TRIAL
    assert addon.stripe_subscription_item_id is None
    remaining = as_utc(addon.trial_ends_at) - utcnow()
    assert timedelta(days=13, hours=23) < remaining <= timedelta(days=14)
    assert await service.has_subscription_addon(test_business.id, AddonKey.MILEAGE_TRACKER)
    # Trials are not projected as features
    assert await service.get_business_features(test_business.id) == []

    eligibility = await service.check_trial_eligibility(test_business.id, AddonKey.MILEAGE_TRACKER)
    assert eligibility.eligible is False
    assert eligibility.reason == TRIAL_USED_REASON

    with pytest.raises(ValueError, match="free trial"):
        await service.start_mileage_trial(test_business.id)


@pytest.mark.asyncio
async def test_expired_trial_is_canceled_on_check(db_session: AsyncSession, test_business) -> None:
    service = SubscriptionAddonService(db_session)
    addon = await service.start_mileage_trial(test_business.id)
    addon.trial_ends_at = utcnow() - timedelta(hours=1)
    await db_session.flush()

    assert await service.has_subscription_addon(test_business.id, AddonKey.MILEAGE_TRACKER) is False
    assert addon.status == AddonStatus.CANCELED
    assert addon.canceled_at is not None

    # The used trial still counts against eligibility
    eligibility = await service.check_trial_eligibility(test_business.id, AddonKey.MILEAGE_TRACKER)
    assert eligibility.reason == TRIAL_USED_REASON


@pytest.mark.asyncio
async def test_trial_without_end_date_is_expired(db_session: AsyncSession, test_business) -> None:
    service = SubscriptionAddonService(db_session)
    addon = await service.start_mileage_trial(test_business.id)
    addon.trial_ends_at = None
    await db_session.flush()

    assert await service.has_subscription_addon(test_business.id, AddonKey.MILEAGE_TRACKER) is False
    assert addon.status == AddonStatus.CANCELED
    assert addon.canceled_at is not None


@pytest.mark.asyncio
async def test_no_trial_while_paid_addon_is_active(db_session: AsyncSession, test_business) -> None:
    service = SubscriptionAddonService(db_session)
    await service.create_subscription_addon(test_business.id, AddonKey.MILEAGE_TRACKER, "si_paid")

    eligibility = await service.check_trial_eligibility(test_business.id, AddonKey.MILEAGE_TRACKER)
    assert eligibility.eligible is False
    assert eligibility.reason == ALREADY_ACTIVE_REASON

    with pytest.raises(ValueError, match="already have an active subscription"):
        await service.start_mileage_trial(test_business.id)


@pytest.mark.asyncio
async def test_no_trial_while_paid_addon_is_past_due(db_session: AsyncSession, test_business) -> None:
    """A past_due add-on keeps its Stripe binding; a trial must not replace it."""
    service = SubscriptionAddonService(db_session)
    addon = await service.create_subscription_addon(
        test_business.id, AddonKey.MILEAGE_TRACKER, "si_paid", stripe_subscription_id="sub_paid"
    )
    await service.update_subscription_addon_status(addon, AddonStatus.PAST_DUE)
    await db_session.commit()

    eligibility = await service.check_trial_eligibility(test_business.id, AddonKey.MILEAGE_TRACKER)
    assert eligibility.eligible is False
    assert eligibility.reason == ALREADY_ACTIVE_REASON

    with pytest.raises(ValueError, match="already have an active subscription"):
        await service.start_mileage_trial(test_business.id)

    assert addon.status == AddonStatus.PAST_DUE
    assert addon.stripe_subscription_item_id == "si_paid"
    assert addon.stripe_subscription_id == "sub_paid"


@pytest.mark.asyncio
async def test_cancel_removes_stripe_item(db_session: AsyncSession, test_business, fake_gateway) -> None:
    service = SubscriptionAddonService(db_session, fake_gateway)
    await service.create_subscription_addon(test_business.id, AddonKey.AI_PHOTO_ANALYSIS, "si_photo")

    addon = await service.cancel_subscription_addon(test_business.id, AddonKey.AI_PHOTO_ANALYSIS)

    assert fake_gateway.deleted_items == ["si_photo"]
    assert addon.status == AddonStatus.CANCELED
    assert addon.canceled_at is not None

    with pytest.raises(ValueError, match="not found or not active"):
        await service.cancel_subscription_addon(test_business.id, AddonKey.AI_PHOTO_ANALYSIS)


@pytest.mark.asyncio
async def test_cancel_requires_a_binding(db_session: AsyncSession, test_business, fake_gateway) -> None:
    """Trials have no Stripe item, so there is nothing to cancel."""
    service = SubscriptionAddonService(db_session, fake_gateway)
    await service.start_mileage_trial(test_business.id)

    with pytest.raises(ValueError):
        await service.cancel_subscription_addon(test_business.id, AddonKey.MILEAGE_TRACKER)
    assert fake_gateway.deleted_items == []
