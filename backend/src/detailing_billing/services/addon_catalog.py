"""Subscription add-on definitions.

Add-ons are business-level recurring features that can be attached to any plan
tier. They are separate from the service add-ons customers pick while booking.
"""
from dataclasses import dataclass, field

from detailing_billing.config import Settings, settings
from detailing_billing.models.business import SubscriptionPlan
from detailing_billing.models.subscription_addon import AddonKey


@dataclass(frozen=True)
class AddonDefinition:
    """Catalog entry for a subscription add-on."""

    key: AddonKey
    name: str
    description: str
    monthly_price: float
    yearly_price: float
    stripe_monthly_price_id: str | None = None
    stripe_yearly_price_id: str | None = None
    available_for_tiers: tuple[SubscriptionPlan, ...] = field(
        default=(SubscriptionPlan.STARTER, SubscriptionPlan.PRO, SubscriptionPlan.FLEET)
    )

    @property
    def feature_flag(self) -> str:
        return self.key.value


def build_catalog(config: Settings) -> tuple[AddonDefinition, ...]:
    """Build the add-on catalog with Stripe price ids from ``config``."""
    return (
        AddonDefinition(
            key=AddonKey.MILEAGE_TRACKER,
            name="Mileage Tracker",
            description=(
                "Automatic mileage tracking for tax deductions with Google Maps integration, "
                "IRS deduction calculations, and CSV export"
            ),
            monthly_price=9.99,
            yearly_price=99.99,
            stripe_monthly_price_id=config.stripe_mileage_tracker_monthly_price_id,
            stripe_yearly_price_id=config.stripe_mileage_tracker_yearly_price_id,
        ),
        AddonDefinition(
            key=AddonKey.AI_PHOTO_ANALYSIS,
            name="AI Photo Analysis",
            description=(
                "AI-powered vehicle condition analysis from customer photos during booking. "
                "Detects vehicle condition and issues, and suggests relevant add-ons."
            ),
            monthly_price=19.99,
            yearly_price=199.99,
            stripe_monthly_price_id=config.stripe_ai_photo_analysis_monthly_price_id,
            stripe_yearly_price_id=config.stripe_ai_photo_analysis_yearly_price_id,
        ),
    )


SUBSCRIPTION_ADDONS = build_catalog(settings)


def normalize_addon_key(raw: str | None) -> AddonKey | None:
    """
    Map an add-on identifier from metadata to an ``AddonKey``.

    Accepts the stored keys (``ai_photo_analysis``) and their hyphenated
    forms (``ai-photo-analysis``). Returns None for anything else.
    """
    if not raw:
        return None
    candidate = raw.strip().lower().replace("-", "_")
    try:
        return AddonKey(candidate)
    except ValueError:
        return None


def get_subscription_addon(key: AddonKey | str) -> AddonDefinition | None:
    """Return the catalog entry for ``key``."""
    addon_key = key if isinstance(key, AddonKey) else normalize_addon_key(key)
    return next((addon for addon in SUBSCRIPTION_ADDONS if addon.key == addon_key), None)


def get_available_addons_for_tier(tier: SubscriptionPlan | None) -> list[AddonDefinition]:
    """Return the add-ons that can be purchased on ``tier``."""
    if tier is None:
        return []
    return [addon for addon in SUBSCRIPTION_ADDONS if tier in addon.available_for_tiers]
