"""Pydantic schemas for the add-on management API."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from detailing_billing.models.business import SubscriptionPlan
from detailing_billing.models.subscription_addon import AddonKey, AddonStatus


class BusinessSubscriptionAddon(BaseModel):
    """Schema for returning a business add-on."""

    id: UUID
    business_id: UUID
    addon_key: AddonKey
    stripe_subscription_id: str | None
    stripe_subscription_item_id: str | None
    status: AddonStatus
    started_at: datetime
    canceled_at: datetime | None
    trial_ends_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BusinessSubscriptionAddonList(BaseModel):
    """Schema for the list of a business's add-ons."""

    items: list[BusinessSubscriptionAddon]
    total: int


class AddonDefinition(BaseModel):
    """Schema for a catalog entry."""

    key: AddonKey
    name: str
    description: str
    monthly_price: float = Field(..., ge=0)
    yearly_price: float = Field(..., ge=0)
    available_for_tiers: list[SubscriptionPlan]
    active: bool = Field(default=False, description="Whether the caller's business has this add-on")

    model_config = ConfigDict(from_attributes=True)


class AddonCatalog(BaseModel):
    """Schema for the add-ons purchasable on the caller's plan."""

    plan: SubscriptionPlan | None
    items: list[AddonDefinition]


class TrialEligibility(BaseModel):
    """Result of a trial eligibility check."""

    eligible: bool
    reason: str | None = None
