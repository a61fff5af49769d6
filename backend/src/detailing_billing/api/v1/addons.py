"""Subscription add-on API endpoints for the signed-in business owner."""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.adapters.stripe_adapter import PaymentGateway
from detailing_billing.api.deps import get_current_business, get_db, get_gateway
from detailing_billing.models.business import Business, SubscriptionStatus
from detailing_billing.models.subscription_addon import AddonKey, AddonStatus
from detailing_billing.schemas.subscription_addon import (
    AddonCatalog,
    AddonDefinition,
    BusinessSubscriptionAddon,
    BusinessSubscriptionAddonList,
)
from detailing_billing.services.addon_catalog import get_available_addons_for_tier, normalize_addon_key
from detailing_billing.services.subscription_addon_service import SubscriptionAddonService

router = APIRouter(tags=["Add-ons"])


@router.get("/addons", response_model=AddonCatalog)
async def list_available_addons(
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
) -> AddonCatalog:
    """
    List the add-ons purchasable on the business's plan tier.

    Each entry reports whether the business currently has the add-on.
    """
    service = SubscriptionAddonService(db)
    items = []
    for addon in get_available_addons_for_tier(business.subscription_plan):
        items.append(
            AddonDefinition(
                key=addon.key,
                name=addon.name,
                description=addon.description,
                monthly_price=addon.monthly_price,
                yearly_price=addon.yearly_price,
                available_for_tiers=list(addon.available_for_tiers),
                active=await service.has_subscription_addon(business.id, addon.key),
            )
        )
    # has_subscription_addon may have expired a trial
    await db.commit()
    return AddonCatalog(plan=business.subscription_plan, items=items)


@router.get("/business/addons", response_model=BusinessSubscriptionAddonList)
async def list_business_addons(
    include_canceled: bool = False,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
) -> BusinessSubscriptionAddonList:
    """
    List the business's add-on records.

    - **include_canceled**: Also return canceled add-ons (default: false)
    """
    statuses = None if include_canceled else (AddonStatus.ACTIVE, AddonStatus.PAST_DUE, AddonStatus.TRIAL)
    addons = await SubscriptionAddonService(db).get_business_subscription_addons(business.id, statuses=statuses)
    return BusinessSubscriptionAddonList(
        items=[BusinessSubscriptionAddon.model_validate(addon) for addon in addons],
        total=len(addons),
    )


@router.post("/business/addons/mileage-trial", response_model=BusinessSubscriptionAddon, status_code=status.HTTP_201_CREATED)
async def start_mileage_trial(
    request: Request,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
) -> BusinessSubscriptionAddon:
    """
    Start the free mileage tracker trial.

    Each business gets one trial, and none while the add-on is active (409).
    """
    if business.subscription_status == SubscriptionStatus.CANCELED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An active subscription is required to start a trial.",
        )

    service = SubscriptionAddonService(db)
    try:
        addon = await service.start_mileage_trial(
            business.id, trial_days=request.app.state.settings.mileage_trial_days
        )
        await db.commit()
    except ValueError as e:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    return BusinessSubscriptionAddon.model_validate(addon)


@router.post("/business/addons/{addon_key}/cancel", response_model=BusinessSubscriptionAddon)
async def cancel_business_addon(
    addon_key: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
) -> BusinessSubscriptionAddon:
    """
    Cancel a paid add-on.

    Removes the add-on's item from its Stripe subscription and marks the
    add-on canceled. Returns 404 when the business has no active add-on
    with that key.
    """
    key: AddonKey | None = normalize_addon_key(addon_key)
    if key is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown add-on {addon_key}")

    service = SubscriptionAddonService(db, gateway)
    try:
        addon = await service.cancel_subscription_addon(business.id, key)
        await db.commit()
    except ValueError as e:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return BusinessSubscriptionAddon.model_validate(addon)
