"""SQLAlchemy ORM models for the detailing billing service."""
# Import all models here to ensure they are registered with Alembic

from detailing_billing.models.base import Base
from detailing_billing.models.business import BillingPeriod, Business, SubscriptionPlan, SubscriptionStatus
from detailing_billing.models.signup_lead import SignupLead
from detailing_billing.models.stripe_event import ProcessedStripeEvent
from detailing_billing.models.subscription_addon import (
    AddonKey,
    AddonStatus,
    BusinessFeature,
    BusinessSubscriptionAddon,
)

__all__ = [
    "Base",
    "AddonKey",
    "AddonStatus",
    "BillingPeriod",
    "Business",
    "BusinessFeature",
    "BusinessSubscriptionAddon",
    "ProcessedStripeEvent",
    "SignupLead",
    "SubscriptionPlan",
    "SubscriptionStatus",
]
